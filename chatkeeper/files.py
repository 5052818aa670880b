"""On-disk layout for transcript files."""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Union

from .models import ExportFormat, Record

logger = logging.getLogger(__name__)

LIBRARY_DIR_NAME = "AIChatTranscripts"

_INVALID_CHARS_RE = re.compile(r'[:/\\?%*|"<>]')

_EXTENSIONS = {
    ExportFormat.PLAINTEXT: "txt",
    ExportFormat.PDF: "pdf",
    ExportFormat.MARKDOWN: "md",
}


def default_library_dir() -> Path:
    return Path.home() / "Documents" / LIBRARY_DIR_NAME


def ensure_directory(path: Union[str, Path]) -> Path:
    directory = Path(path).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def sanitize_filename(title: str) -> str:
    name = _INVALID_CHARS_RE.sub("_", title)
    return name or "untitled"


def file_extension(export_format: Union[ExportFormat, str]) -> str:
    return _EXTENSIONS[ExportFormat(export_format)]


def transcript_filename(record: Record, export_format: Union[ExportFormat, str]) -> str:
    return f"{sanitize_filename(record.title)}_{record.id}.{file_extension(export_format)}"


def _atomic_write(destination: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=destination.parent, prefix=f".{destination.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def save_transcript(
    record: Record,
    directory: Union[str, Path],
    export_format: Union[ExportFormat, str, None] = None,
) -> Path:
    """Write ``record.content`` into ``directory`` and return the file path.

    The ``pdf`` format is written as UTF-8 text with a ``.pdf`` extension;
    no PDF rendering happens here. The file is written to a temporary name
    first and renamed into place, so readers never observe a partial file.
    The caller is responsible for hashing the result.
    """

    fmt = ExportFormat(export_format or record.export_format)
    target_dir = ensure_directory(directory)
    destination = target_dir / transcript_filename(record, fmt)
    _atomic_write(destination, record.content.encode("utf-8"))
    logger.info("Saved transcript %s to %s", record.id, destination)
    return destination


def copy_file(source: Union[str, Path], directory: Union[str, Path]) -> Path:
    source_path = Path(source)
    target_dir = ensure_directory(directory)
    destination = target_dir / source_path.name
    fd, tmp_name = tempfile.mkstemp(dir=target_dir, prefix=f".{destination.name}.", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copyfile(source_path, tmp_name)
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Copied %s to %s", source_path, destination)
    return destination
