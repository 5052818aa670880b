"""Logging setup shared by the CLI and the HTTP service."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def setup_logging(level: str = "WARNING") -> None:
    """Attach one stderr handler to the root logger and set its level.

    Calling it again adjusts the level and re-targets the handler at the
    current ``sys.stderr``.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for existing in [h for h in root_logger.handlers if getattr(h, "_chatkeeper", False)]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._chatkeeper = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
