"""
Activity log.

A single append-only text file under the output root recording the life of
every image: start, successful classification, each routing decision and
failures. Implemented as a dedicated loguru file sink; only records bound to
this log instance reach the file.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from aoi_relay.models.schemas import Category, ImageCandidate
from aoi_relay.utils.helpers import generate_uuid, single_line

LINE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {message}"


class ActivityLog:
    """Serialized, line-oriented activity log."""

    def __init__(self, path: Path):
        """
        Initialize activity log.

        Args:
            path: Log file location, usually ``<output_root>/log.txt``
        """
        self.path = path
        self._key = generate_uuid()
        self._lock = threading.Lock()
        self._logger = logger.bind(activity_log=self._key)
        self._sink_id: Optional[int] = None

    def _owns(self, record) -> bool:
        return record["extra"].get("activity_log") == self._key

    def open(self):
        """Attach the file sink (idempotent)."""
        if self._sink_id is None:
            self._sink_id = logger.add(
                str(self.path),
                format=LINE_FORMAT,
                filter=self._owns,
                level="DEBUG",
                colorize=False,
                encoding="utf-8",
                buffering=1,
            )
            logger.info(f"Activity log: {self.path}")

    def close(self):
        """Detach the file sink, flushing it."""
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def _append(self, level: str, message: str):
        with self._lock:
            self._logger.log(level, single_line(message))

    def started(self, candidate: ImageCandidate):
        self._append("INFO", f"Processing new image - {candidate.path}")

    def classified(self, candidate: ImageCandidate):
        self._append("SUCCESS", f"Image {candidate.path} classified successfully")

    def routed(self, candidate: ImageCandidate, category: Category, document: Path):
        self._append(
            "INFO",
            f"Image {candidate.path} routed to {category.value}, result saved to {document}",
        )

    def failed(self, candidate: ImageCandidate, error: BaseException):
        self._append("ERROR", f"Error processing image {candidate.path} - {error}")

    def __enter__(self) -> "ActivityLog":
        self.open()
        return self

    def __exit__(self, *exc_info):
        self.close()
