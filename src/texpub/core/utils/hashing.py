"""SHA-256 content hashing for change detection and integrity checks"""

import hashlib
import json
import re
from pathlib import Path
from typing import Any


_HASH_RE = re.compile(r'^[a-f0-9]{64}$')


def sha256_bytes(data: bytes) -> str:
    """Return hex-encoded SHA-256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 hash of content (64 chars)."""
    return sha256_bytes(content.encode("utf-8"))


def file_hash(path: Path) -> str:
    """Hash of the raw bytes of a file. Raises OSError if unreadable."""
    return sha256_bytes(Path(path).read_bytes())


def object_hash(obj: Any) -> str:
    """Hash of the compact, key-sorted JSON serialization of obj."""
    serialized = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return sha256(serialized)


def short_hash(content: str, length: int = 8) -> str:
    return sha256(content)[:length]


def is_valid_hash(value: Any) -> bool:
    """True if value is a SHA-256 hex digest, ignoring surrounding whitespace and case."""
    if not isinstance(value, str):
        return False
    return bool(_HASH_RE.match(value.strip().lower()))
