from __future__ import annotations

from hashlib import sha256
from pathlib import Path

__all__ = ["compute_digest", "compute_file_digest"]


def compute_digest(data: bytes) -> str:
    """Return the hexadecimal SHA256 digest of an in-memory payload.

    Args:
        data: The raw bytes.

    Returns:
        The lower-case hexadecimal digest.
    """
    return sha256(data).hexdigest()


def compute_file_digest(path: Path, *, chunk_size: int = 8 * 1024 * 1024) -> str:
    """Return a hexadecimal SHA256 digest for the file.

    Args:
        path: The path to the file.
        chunk_size: The chunk size to use when reading the file.

    Returns:
        The hexadecimal SHA256 digest.
    """
    digest = sha256()
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()
