"""
Stability Gate.

Blocks until a freshly written image can be opened exclusively and has stopped
changing, so that the pipeline never reads a file another process is still
writing.
"""

from __future__ import annotations

import os
import sys
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from loguru import logger

IS_WINDOWS = sys.platform == "win32"

if IS_WINDOWS:  # pragma: no cover - exercised on Windows stations only
    import msvcrt
else:
    import fcntl

# (size, mtime in ns) of an unlocked file
Signature = Tuple[int, int]


class GateError(Exception):
    """Base class for Stability Gate failures."""


class FileVanishedError(GateError):
    """The candidate disappeared while waiting for it."""


class StabilityTimeout(GateError):
    """The configured maximum wait elapsed."""


class GateCancelled(GateError):
    """Shutdown was requested while waiting."""


@contextmanager
def _exclusive_open(path: Path) -> Iterator[int]:
    """Open ``path``, hold an exclusive non-blocking lock and yield its fd.

    Raises ``BlockingIOError``/``PermissionError`` while a writer holds it.
    """

    with open(path, "rb") as handle:
        if IS_WINDOWS:  # pragma: no cover
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
            try:
                yield handle.fileno()
            finally:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            try:
                yield handle.fileno()
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _is_busy(error: OSError) -> bool:
    if isinstance(error, BlockingIOError):
        return True
    # Windows reports sharing violations as PermissionError.
    return IS_WINDOWS and isinstance(error, PermissionError)


class StabilityGate:
    """Exclusive-open retry loop with a fixed interval.

    A file passes once two consecutive checks, one interval apart, both get
    the exclusive lock and see the same size and modification time. Writers
    that never lock the file are caught by the second condition.
    """

    def __init__(
        self,
        poll_interval: float = 0.5,
        max_wait: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize gate.

        Args:
            poll_interval: Seconds between attempts
            max_wait: Give up after this many seconds, None waits forever
            stop_event: Set on shutdown to abandon the wait
        """
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.stop_event = stop_event or threading.Event()

    def _signature(self, path: Path) -> Optional[Signature]:
        """Signature of ``path`` if it is unlocked, None while a writer holds it."""
        try:
            with _exclusive_open(path) as fd:
                stats = os.fstat(fd)
                return stats.st_size, stats.st_mtime_ns
        except FileNotFoundError as e:
            raise FileVanishedError(f"{path} disappeared before it could be read") from e
        except OSError as e:
            if not _is_busy(e):
                raise
            return None

    def wait_until_stable(self, path: Path) -> int:
        """
        Block until ``path`` is unlocked and unchanged for one interval.

        Returns:
            Number of retries caused by a lock or a change in the file

        Raises:
            FileVanishedError: The file no longer exists
            StabilityTimeout: ``max_wait`` elapsed
            GateCancelled: ``stop_event`` was set
        """
        started = time.monotonic()
        attempts = 0
        previous: Optional[Signature] = None

        while True:
            current = self._signature(path)
            if current is not None and current == previous:
                if attempts:
                    logger.debug(f"{path} settled after {attempts} retries")
                return attempts

            if current is None or previous is not None:
                attempts += 1
            previous = current

            if self.max_wait is not None and time.monotonic() - started >= self.max_wait:
                raise StabilityTimeout(f"{path} still being written after {self.max_wait}s")
            if self.stop_event.wait(self.poll_interval):
                raise GateCancelled(f"shutdown while waiting for {path}")

    def read(self, path: Path) -> bytes:
        """Wait for ``path`` to settle, then return its full content."""

        self.wait_until_stable(path)
        return path.read_bytes()
