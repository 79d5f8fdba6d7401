"""Output tree that doubles as the record of which images are done."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from loguru import logger

from aoi_relay.models.schemas import Category, ImageCandidate, RoutingDecision
from aoi_relay.utils.helpers import atomic_write_bytes, normalise_path


@dataclass(slots=True, frozen=True)
class ResultArtifact:
    """Copied image and result document written for one prediction entry."""

    category: Category
    image_path: Path
    document_path: Path


class ResultStore:
    """Layout ``<output_root>/<date>/<serial>/{PASS|FAIL}/``.

    A primary result document (``<stem>_result.json``) in either category is
    the only proof that an image has been processed.
    """

    def __init__(self, output_root: Path) -> None:
        self.output_root = normalise_path(output_root)

    def bucket(self, candidate: ImageCandidate) -> Path:
        return self.output_root / candidate.date / candidate.serial

    def category_dir(self, candidate: ImageCandidate, category: Category) -> Path:
        return self.bucket(candidate) / category.value

    @staticmethod
    def document_name(candidate: ImageCandidate, index: int) -> str:
        """Result document name for the ``index``-th prediction entry."""

        if index == 0:
            return candidate.result_name
        return f"{candidate.stem}_result_{index}.json"

    @staticmethod
    def write_order(decisions: Iterable[RoutingDecision]) -> list[RoutingDecision]:
        """Secondary entries first, the primary entry last."""

        return sorted(decisions, key=lambda decision: (decision.index == 0, decision.index))

    def already_processed(self, candidate: ImageCandidate) -> bool:
        """Check for a primary result document under PASS or FAIL."""

        return any(
            (self.category_dir(candidate, category) / candidate.result_name).is_file()
            for category in Category
        )

    def write(
        self,
        candidate: ImageCandidate,
        decision: RoutingDecision,
        image: bytes,
    ) -> ResultArtifact:
        """Store the image copy, then the entry's result document.

        The document goes last so its existence implies the image copy is
        already in place.
        """

        destination = self.category_dir(candidate, decision.category)
        destination.mkdir(parents=True, exist_ok=True)

        image_path = destination / candidate.filename
        document_path = destination / self.document_name(candidate, decision.index)

        atomic_write_bytes(image_path, image)
        atomic_write_bytes(document_path, decision.source.encode("utf-8"))

        logger.debug(f"Stored {decision.category.value} artifact {document_path}")
        return ResultArtifact(
            category=decision.category,
            image_path=image_path,
            document_path=document_path,
        )
