"""
Per-image processing routine.

idempotency check -> stability wait -> read -> submit -> parse -> route.
Every failure is contained at the image level: it is written to the activity
log and the routine returns ``ProcessOutcome.FAILED``.
"""

from __future__ import annotations

import threading
from contextlib import nullcontext
from enum import Enum
from typing import Optional

from loguru import logger

from aoi_relay.models.schemas import ImageCandidate
from aoi_relay.utils.classifier_client import ClassifierClient
from aoi_relay.utils.config import Settings, get_settings
from domains.inspection_routing.processors.activity_log import ActivityLog
from domains.inspection_routing.processors.result_store import ResultArtifact, ResultStore
from domains.inspection_routing.processors.router import parse
from domains.inspection_routing.processors.stability import StabilityGate


class ProcessOutcome(str, Enum):
    SKIPPED = "skipped"
    PROCESSED = "processed"
    FAILED = "failed"


class ImagePipeline:
    """Classify one image and route its predictions into the result store."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[ClassifierClient] = None,
        store: Optional[ResultStore] = None,
        activity: Optional[ActivityLog] = None,
        gate: Optional[StabilityGate] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize pipeline.

        Args:
            settings: Relay settings, defaults to the cached instance
            client: Classifier client
            store: Result store rooted at the output root
            activity: Activity log under the output root
            gate: Stability gate
            stop_event: Shutdown signal shared with the gate
        """
        self.settings = settings or get_settings()
        self.client = client or ClassifierClient(self.settings)
        self.store = store or ResultStore(self.settings.output_root)
        self.activity = activity or ActivityLog(self.settings.activity_log_path)
        self.gate = gate or StabilityGate(
            poll_interval=self.settings.stability_poll_interval,
            max_wait=self.settings.stability_max_wait,
            stop_event=stop_event,
        )

        # One slot: remote call, parsing and routing of one image at a time.
        if self.settings.serialize_processing:
            self._critical_section = threading.Lock()
        else:
            self._critical_section = nullcontext()

    def open(self):
        self.activity.open()

    def close(self):
        self.activity.close()
        self.client.close()

    def process(self, candidate: ImageCandidate) -> ProcessOutcome:
        """
        Process a single image end to end.

        Args:
            candidate: Image to classify

        Returns:
            Outcome of the attempt; never raises for per-image failures
        """
        if self.store.already_processed(candidate):
            logger.debug(f"Already processed, skipping: {candidate.path}")
            return ProcessOutcome.SKIPPED

        self.activity.started(candidate)

        try:
            content = self.gate.read(candidate.path)

            with self._critical_section:
                # Another unit may have finished this image while we waited.
                if self.store.already_processed(candidate):
                    logger.debug(f"Processed while waiting, skipping: {candidate.path}")
                    return ProcessOutcome.SKIPPED

                body = self.client.classify(candidate, content)
                self.activity.classified(candidate)

                decisions = parse(body)
                artifacts: list[ResultArtifact] = []
                for decision in self.store.write_order(decisions):
                    artifact = self.store.write(candidate, decision, content)
                    self.activity.routed(candidate, artifact.category, artifact.document_path)
                    artifacts.append(artifact)

        except Exception as e:
            logger.error(f"Failed to process {candidate.path}: {e}")
            self.activity.failed(candidate, e)
            return ProcessOutcome.FAILED

        logger.success(
            f"Processed {candidate.path}: "
            + ", ".join(artifact.category.value for artifact in artifacts)
        )
        return ProcessOutcome.PROCESSED
