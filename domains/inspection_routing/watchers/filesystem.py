#!/usr/bin/env python3
"""
File system watcher for Inspection Routing.

Reconciles the image backlog at startup, then monitors the input root for
new images and hands each one to the image pipeline on a worker thread.
Uses watchdog library for cross-platform file system event monitoring.
"""

import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from aoi_relay.models.schemas import ImageCandidate
from aoi_relay.utils.config import Settings, get_settings
from aoi_relay.utils.helpers import has_extension, is_within, normalise_path
from domains.inspection_routing.processors.pipeline import ImagePipeline, ProcessOutcome


class ImageEventHandler(FileSystemEventHandler):
    """Forwards file creation and last-write events to the controller."""

    def __init__(self, controller: "IngestionController"):
        """
        Initialize event handler.

        Args:
            controller: Controller that schedules processing
        """
        super().__init__()
        self.controller = controller

    def on_created(self, event: FileSystemEvent):
        """Handle file creation."""
        # With close notifications the file is still empty or partial here.
        if event.is_directory or self.controller.close_events:
            return
        self.controller.submit(Path(event.src_path))

    def on_modified(self, event: FileSystemEvent):
        """Handle file modification (last write)."""
        # Skip directory modifications (too noisy)
        if event.is_directory or self.controller.close_events:
            return
        self.controller.submit(Path(event.src_path))

    def on_closed(self, event: FileSystemEvent):
        """Handle a writer closing the file (inotify only)."""
        if event.is_directory:
            return
        self.controller.submit(Path(event.src_path))

    def on_moved(self, event: FileSystemEvent):
        """Handle an image renamed into place."""
        dest = getattr(event, "dest_path", None)
        if event.is_directory or not dest:
            return
        self.controller.submit(Path(dest))


class IngestionController:
    """Backlog reconciliation plus live intake for one input root."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pipeline: Optional[ImagePipeline] = None,
    ):
        """
        Initialize controller.

        Args:
            settings: Relay settings, defaults to the cached instance
            pipeline: Per-image processing routine
        """
        self.settings = settings or get_settings()
        self.input_root = normalise_path(self.settings.input_root)
        self.output_root = normalise_path(self.settings.output_root)
        self.extension = self.settings.image_extension

        # Output nested in the input tree must not be fed back in as input.
        if self.output_root != self.input_root and is_within(self.output_root, self.input_root):
            self.excluded_root: Optional[Path] = self.output_root
        else:
            self.excluded_root = None

        # inotify reports IN_CLOSE_WRITE; elsewhere rely on created/modified plus the gate.
        if self.settings.wait_for_close is None:
            self.close_events = sys.platform.startswith("linux")
        else:
            self.close_events = self.settings.wait_for_close

        self.stop_event = threading.Event()
        self.pipeline = pipeline or ImagePipeline(self.settings, stop_event=self.stop_event)

        self.event_handler = ImageEventHandler(self)
        self.observer: Optional[Observer] = None
        self.executor: Optional[ThreadPoolExecutor] = None

        self._in_flight: set[Path] = set()
        self._in_flight_lock = threading.Lock()
        self._accepting = False

        logger.info("Ingestion controller initialized")
        logger.info(f"Input root: {self.input_root}")
        logger.info(f"Output root: {self.output_root}")

    def candidate_for(self, path: Path) -> Optional[ImageCandidate]:
        """
        Derive the (date, serial) bucket for an image path.

        Args:
            path: Path reported by a scan or event

        Returns:
            Candidate, or None when the path is not ``<root>/<date>/<serial>/<file>``
        """
        path = normalise_path(path)

        if not has_extension(path, self.extension):
            return None
        if self._excluded(path):
            return None

        try:
            relative = path.relative_to(self.input_root)
        except ValueError:
            return None

        if len(relative.parts) != 3:
            return None

        date, serial, _ = relative.parts
        return ImageCandidate(path=path, date=date, serial=serial)

    def _excluded(self, path: Path) -> bool:
        return self.excluded_root is not None and is_within(path, self.excluded_root)

    def reconcile_backlog(self) -> int:
        """
        Process every unprocessed image already on disk, one at a time.

        Returns:
            Number of images processed (successfully or not)
        """
        if not self.input_root.is_dir():
            logger.warning(f"Input root does not exist: {self.input_root}")
            return 0

        logger.info("Reconciling backlog...")
        handled = 0

        for date_dir in sorted(p for p in self.input_root.iterdir() if p.is_dir()):
            if self._excluded(normalise_path(date_dir)):
                continue
            for serial_dir in sorted(p for p in date_dir.iterdir() if p.is_dir()):
                for image_path in sorted(p for p in serial_dir.iterdir() if p.is_file()):
                    candidate = self.candidate_for(image_path)
                    if candidate is None:
                        continue
                    if self.stop_event.is_set():
                        logger.info("Backlog reconciliation interrupted")
                        return handled
                    if self.pipeline.process(candidate) is not ProcessOutcome.SKIPPED:
                        handled += 1

        logger.success(f"Backlog reconciled: {handled} images processed")
        return handled

    def submit(self, path: Path) -> Optional[Future]:
        """
        Schedule processing of ``path`` without blocking the caller.

        Returns:
            Future for the processing unit, or None if the path was ignored
        """
        if not self._accepting or self.executor is None:
            return None

        candidate = self.candidate_for(path)
        if candidate is None:
            return None

        with self._in_flight_lock:
            if candidate.path in self._in_flight:
                logger.debug(f"Already in flight: {candidate.path}")
                return None
            self._in_flight.add(candidate.path)

        try:
            return self.executor.submit(self._run_unit, candidate)
        except RuntimeError:
            # Executor shut down between the check and the submit.
            self._release(candidate)
            return None

    def _run_unit(self, candidate: ImageCandidate) -> ProcessOutcome:
        try:
            return self.pipeline.process(candidate)
        finally:
            self._release(candidate)

    def _release(self, candidate: ImageCandidate):
        with self._in_flight_lock:
            self._in_flight.discard(candidate.path)

    def start(self):
        """Start live intake."""
        self.input_root.mkdir(parents=True, exist_ok=True)

        self.executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix="aoi-relay",
        )
        self._accepting = True

        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.input_root), recursive=True)
        self.observer.start()
        logger.success(f"Started watching: {self.input_root} (*.{self.extension})")

    def stop(self):
        """Stop accepting events and drain what is already running."""
        self._accepting = False
        self.stop_event.set()

        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        if self.executor is not None:
            self.executor.shutdown(wait=True, cancel_futures=True)
            self.executor = None

        logger.info("Ingestion controller stopped")

    def request_stop(self):
        """Ask ``run`` to return; safe to call from a signal handler."""
        self.stop_event.set()

    def run(self, once: bool = False):
        """
        Reconcile the backlog, then watch until ``request_stop`` is called.

        Args:
            once: Only reconcile the backlog, do not watch
        """
        self.pipeline.open()
        try:
            self.reconcile_backlog()
            if once or self.stop_event.is_set():
                return

            self.start()
            self.stop_event.wait()
        finally:
            self.stop()
            self.pipeline.close()
