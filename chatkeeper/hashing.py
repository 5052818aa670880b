"""SHA-256 helpers used to fingerprint transcript files."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Union

CHUNK_SIZE = 64 * 1024

_SHA256_RE = re.compile(r"[0-9a-fA-F]{64}")


def sha256_hex(data: Union[bytes, str]) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``.

    Text is encoded as UTF-8 before hashing.
    """

    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Union[str, Path]) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_hash(computed: str, expected: str) -> bool:
    return computed.lower() == expected.lower()


def verify_file(path: Union[str, Path], expected: str) -> bool:
    return verify_hash(hash_file(path), expected)


def is_sha256_hex(value: str) -> bool:
    return bool(_SHA256_RE.fullmatch(value or ""))


def hex_to_bytes(value: str) -> bytes:
    if len(value) % 2:
        raise ValueError(f"Hex string has odd length: {len(value)}")
    return bytes.fromhex(value)
