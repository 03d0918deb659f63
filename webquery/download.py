"""Writing response bodies to files, including collision-safe temp files."""

from __future__ import annotations

import logging
import os
import secrets
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, Callable, Iterable

from .cancellation import CancellationToken
from .constants import (
    TEMP_FILE_DEFAULT_STEM,
    TEMP_FILE_RETRY_BUDGET_SECONDS,
    TEMP_FILE_RETRY_DELAY_SECONDS,
)
from .errors import TempFileCreationError

logger = logging.getLogger(__name__)

NameFactory = Callable[[Path | None], Path]


def temp_name_for(path: Path | None) -> Path:
    """Generate `{stem or "tmp"}-{random}{suffix}` next to `path` (or in the temp dir)."""

    if path is None:
        directory = Path(tempfile.gettempdir())
        stem, suffix = "", ""
    else:
        directory = path.parent if path.name else path
        stem, suffix = path.stem, path.suffix

    discriminator = secrets.token_hex(8)
    return directory / f"{stem or TEMP_FILE_DEFAULT_STEM}-{discriminator}{suffix}"


def create_temp_file(
    path: str | os.PathLike[str] | None = None,
    *,
    cancel: CancellationToken | None = None,
    name_factory: NameFactory = temp_name_for,
    budget_seconds: float = TEMP_FILE_RETRY_BUDGET_SECONDS,
    retry_delay_seconds: float = TEMP_FILE_RETRY_DELAY_SECONDS,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[Path, BinaryIO]:
    """Exclusively create a new uniquely named file and return it open for writing.

    A name that already exists is retried with a fresh name every
    `retry_delay_seconds` until `budget_seconds` have passed, after which
    `TempFileCreationError` is raised from an `ExceptionGroup` holding every
    failed attempt.
    """

    cancel = cancel or CancellationToken()
    template = None if path is None else Path(path)
    failures: list[OSError] = []
    started = clock()

    while True:
        cancel.raise_if_cancelled()
        candidate = name_factory(template)
        try:
            handle = open(candidate, "xb")
        except FileExistsError as exc:
            failures.append(exc)
            elapsed = clock() - started
            if elapsed >= budget_seconds:
                raise TempFileCreationError(
                    f"Could not create a unique file after {len(failures)} attempt(s) "
                    f"in {elapsed:.1f}s: {exc}",
                    failures,
                ) from ExceptionGroup("temp file name collisions", failures)
            logger.debug("Temp file %s already exists; retrying", candidate)
            if cancel.wait(retry_delay_seconds):
                cancel.raise_if_cancelled()
            continue

        return candidate, handle


def write_chunks(handle: BinaryIO, chunks: Iterable[bytes]) -> int:
    written = 0
    for chunk in chunks:
        handle.write(chunk)
        written += len(chunk)
    return written


def download_to(path: str | os.PathLike[str], chunks: Iterable[bytes]) -> Path:
    """Write `chunks` to `path`, replacing any existing file."""

    target = Path(path)
    with open(target, "wb") as handle:
        written = write_chunks(handle, chunks)
    logger.debug("Wrote %d bytes to %s", written, target)
    return target


def download_to_temp(
    chunks: Iterable[bytes],
    path: str | os.PathLike[str] | None = None,
    *,
    cancel: CancellationToken | None = None,
) -> Path:
    target, handle = create_temp_file(path, cancel=cancel)
    with handle:
        written = write_chunks(handle, chunks)
    logger.debug("Wrote %d bytes to %s", written, target)
    return target


__all__ = [
    "create_temp_file",
    "download_to",
    "download_to_temp",
    "temp_name_for",
    "write_chunks",
]
