from __future__ import annotations

import enum
from pathlib import PurePath

__all__ = [
    "MediaKind",
    "SUPPORTED_IMAGE_FORMATS",
    "SUPPORTED_VIDEO_FORMATS",
    "classify",
    "extension_of",
    "is_image_format",
    "is_video_format",
    "is_supported_format",
]

SUPPORTED_IMAGE_FORMATS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".heic", ".webp"})
SUPPORTED_VIDEO_FORMATS = frozenset({".mp4", ".mov", ".avi", ".mkv"})


class MediaKind(str, enum.Enum):
    image = "image"
    video = "video"
    unsupported = "unsupported"


def extension_of(filename: str) -> str:
    """Return the lower-cased extension of ``filename`` including the dot, or ``""``."""
    return PurePath(filename).suffix.lower()


def classify(filename: str) -> MediaKind:
    """Map a filename to its media kind using the extension alone."""
    ext = extension_of(filename)
    if ext in SUPPORTED_IMAGE_FORMATS:
        return MediaKind.image
    if ext in SUPPORTED_VIDEO_FORMATS:
        return MediaKind.video
    return MediaKind.unsupported


def is_image_format(filename: str) -> bool:
    return classify(filename) is MediaKind.image


def is_video_format(filename: str) -> bool:
    return classify(filename) is MediaKind.video


def is_supported_format(filename: str) -> bool:
    return classify(filename) is not MediaKind.unsupported
