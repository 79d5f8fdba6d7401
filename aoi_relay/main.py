#!/usr/bin/env python3
"""
AOI Relay - service entry point.

Watches an inspection station's image tree, classifies every new image with
the remote AOI classifier and sorts images and results into PASS/FAIL.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from aoi_relay.utils.config import Settings, get_settings
from domains.inspection_routing.watchers.filesystem import IngestionController

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str):
    """Route loguru output to stdout at ``level``."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level.upper())


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Classify new inspection images and sort them into PASS/FAIL.",
    )
    parser.add_argument(
        "--input-root",
        type=Path,
        default=None,
        help="Directory tree to watch (<date>/<serial>/<image>).",
    )
    parser.add_argument(
        "--output-root",
        type=Path,
        default=None,
        help="Where PASS/FAIL results and log.txt are written.",
    )
    parser.add_argument(
        "--classifier-url",
        default=None,
        help="Classifier endpoint receiving one POST per image.",
    )
    parser.add_argument(
        "--extension",
        default=None,
        help="Image file extension to accept (default from settings: jpg).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process the existing backlog and exit instead of watching.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Console log level (default from settings).",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply CLI overrides on top of environment settings."""

    overrides = {
        "input_root": args.input_root,
        "output_root": args.output_root,
        "classifier_url": args.classifier_url,
        "image_extension": args.extension,
        "log_level": args.log_level,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}

    settings = get_settings()
    if not overrides:
        return settings
    return Settings(**{**settings.model_dump(), **overrides})


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the relay service."""

    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except Exception as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    configure_logging(settings.log_level)
    logger.info("AOI Relay - inspection image router")
    logger.info(f"Classifier: {settings.classifier_url}")

    controller = IngestionController(settings)

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        controller.request_stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        controller.run(once=args.once)
    except Exception as e:
        logger.error(f"AOI Relay failed: {e}")
        return 1

    logger.info("AOI Relay stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
