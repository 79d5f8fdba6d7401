"""
Client for the remote AOI classification service.

Provides:
- Request construction (station metadata + one base64 image)
- A single POST per image, no retry
- Error translation to ClassifierError
"""

import base64
from typing import Optional

import httpx
from loguru import logger

from aoi_relay.models.schemas import (
    ClassificationRequest,
    FileMeta,
    ImageCandidate,
    InputData,
    InputMeta,
)
from aoi_relay.utils.config import Settings, get_settings
from aoi_relay.utils.helpers import unix_timestamp


class ClassifierError(Exception):
    """The classifier call failed (transport error or non-2xx status)."""


class ClassifierClient:
    """Client for submitting images to the classifier."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize classifier client.

        Args:
            settings: Relay settings, defaults to the cached instance
            transport: Optional httpx transport (used by tests)
        """
        self.settings = settings or get_settings()
        self.url = self.settings.classifier_url
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.settings.classifier_timeout),
            transport=transport,
        )

    def build_request(self, candidate: ImageCandidate, content: bytes) -> ClassificationRequest:
        """
        Build the request body for one image.

        Args:
            candidate: Image being classified
            content: Full byte content of the image

        Returns:
            Request model ready for serialization
        """
        return ClassificationRequest(
            input_meta=InputMeta(**self.settings.input_meta()),
            input_data=[
                InputData(
                    meta=FileMeta(
                        filename=candidate.filename,
                        filetype=self.settings.image_extension,
                        timestamp=unix_timestamp(),
                    ),
                    content=base64.b64encode(content).decode("ascii"),
                )
            ],
        )

    def classify(self, candidate: ImageCandidate, content: bytes) -> str:
        """
        Submit one image and return the raw response body.

        Raises:
            ClassifierError: On transport failure or non-success status
        """
        request = self.build_request(candidate, content)

        try:
            response = self._client.post(self.url, json=request.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ClassifierError(
                f"classifier returned HTTP {e.response.status_code} for {candidate.filename}"
            ) from e
        except httpx.HTTPError as e:
            raise ClassifierError(f"classifier request failed: {e!r}") from e

        logger.debug(f"Classifier answered {response.status_code} for {candidate.path}")
        return response.text

    def close(self):
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> "ClassifierClient":
        return self

    def __exit__(self, *exc_info):
        self.close()
