"""
Helper utilities for AOI Relay.

Common functions used across domains.
"""

import os
import time
from pathlib import Path
from uuid import uuid4


def generate_uuid() -> str:
    """Generate a unique identifier."""
    return str(uuid4())


def unix_timestamp() -> int:
    """Current time as whole seconds since the epoch."""
    return int(time.time())


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""

    try:
        return path.expanduser().resolve()
    except FileNotFoundError:
        return path.expanduser().absolute()


def has_extension(path: Path, extension: str) -> bool:
    """Case-insensitive check of ``path`` against a bare extension like ``jpg``."""
    return path.suffix.lstrip('.').lower() == extension.lower()


def is_within(path: Path, root: Path) -> bool:
    """Check whether ``path`` is ``root`` or lies below it."""
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def single_line(text: str) -> str:
    """Collapse line breaks so text fits on one log line."""
    return " ".join(str(text).split())


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and move it into place."""

    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path.write_bytes(data)
    os.replace(tmp_path, path)
