"""Root logger setup for the command line."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from .constants import LOG_DATE_FORMAT, LOG_FORMAT


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)

    # stdout carries command output.
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Connection pool chatter drowns the per-fetch debug lines.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = ["setup_logging"]
