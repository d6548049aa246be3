"""Logging configuration for the application."""

from __future__ import annotations

import logging


def configure_logging(verbose: bool = False) -> None:
    """Configure logging with standard format and levels."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)7s %(message)s",
        datefmt="%H:%M:%S",
        level=logging.DEBUG if verbose else logging.INFO,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
