from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import PurePosixPath
from typing import Optional

__all__ = ["DerivedPaths", "derive_paths", "THUMBS_DIR", "MEDIUM_DIR"]

THUMBS_DIR = "thumbs"
MEDIUM_DIR = "medium"


@dataclass(frozen=True, slots=True)
class DerivedPaths:
    """Relative storage keys for one piece of content and its derivatives."""

    original: str
    thumb: str
    medium: str


def derive_paths(
    owner_id: int,
    captured: date,
    digest: str,
    ext: str,
    *,
    thumb_ext: Optional[str] = None,
) -> DerivedPaths:
    """Return the content-addressed storage keys for a digest.

    The layout is ``{owner}/{year}/{month:02d}/{digest}{ext}`` with ``thumbs/``
    and ``medium/`` siblings holding files of the same name. ``captured`` may
    be a ``date`` or ``datetime``; its calendar fields are used as given.

    Args:
        owner_id: The owning account.
        captured: When the media was captured.
        digest: The content digest of the uploaded bytes.
        ext: Extension of the stored original, including the dot.
        thumb_ext: Replacement extension for the thumbnail key only.

    Returns:
        The derived storage keys.
    """
    parent = PurePosixPath(str(owner_id), f"{captured.year:04d}", f"{captured.month:02d}")
    filename = f"{digest}{ext}"
    thumb_filename = f"{digest}{thumb_ext if thumb_ext is not None else ext}"
    return DerivedPaths(
        original=str(parent / filename),
        thumb=str(parent / THUMBS_DIR / thumb_filename),
        medium=str(parent / MEDIUM_DIR / filename),
    )
