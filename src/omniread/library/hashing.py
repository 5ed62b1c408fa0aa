"""Content hashing for catalog keys and duplicate detection."""

from __future__ import annotations

import hashlib
import struct
from pathlib import Path

# Only the head of the file is read; the size disambiguates files sharing a head.
_HEAD_SIZE = 8192


def compute_content_hash(path: Path) -> str:
    """Return an MD5 hex digest of the first 8 KiB plus the file size.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    with open(path, "rb") as f:
        size = f.seek(0, 2)
        f.seek(0)
        head = f.read(_HEAD_SIZE)
    digest = hashlib.md5(head)
    digest.update(struct.pack("<Q", size))
    return digest.hexdigest()
