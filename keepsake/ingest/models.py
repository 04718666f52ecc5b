from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Literal, NamedTuple, Optional

from . import MANIFEST_VERSION

MediaType = Literal["photo", "video"]

__all__ = ["Dimensions", "UNKNOWN_DIMENSIONS", "ProcessedVariant", "VariantSet", "MediaType"]


class Dimensions(NamedTuple):
    """Pixel size of a stored file; ``(0, 0)`` means unknown."""

    width: int
    height: int

    @property
    def is_known(self) -> bool:
        return self.width > 0 and self.height > 0


UNKNOWN_DIMENSIONS = Dimensions(0, 0)


@dataclass(slots=True)
class ProcessedVariant:
    """One physical file written by the pipeline."""

    path: str
    dimensions: Dimensions
    size_bytes: int
    sha256: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "width_px": self.dimensions.width,
            "height_px": self.dimensions.height,
            "size_bytes": self.size_bytes,
            "sha256": self.sha256,
        }


@dataclass(slots=True)
class VariantSet:
    """Everything an ingest call produced, ready for the caller to persist."""

    media_type: MediaType
    owner_id: int
    taken_at: date
    source_digest: str
    original: ProcessedVariant
    medium: Optional[ProcessedVariant] = None
    thumb: Optional[ProcessedVariant] = None
    poster: Optional[ProcessedVariant] = None

    def variants(self) -> Dict[str, ProcessedVariant]:
        named = {
            "original": self.original,
            "medium": self.medium,
            "thumb": self.thumb,
            "poster": self.poster,
        }
        return {name: variant for name, variant in named.items() if variant is not None}

    def to_manifest(self) -> Dict[str, Any]:
        """Return the JSON-ready manifest, validated against the published schema."""
        manifest: Dict[str, Any] = {
            "schema_version": MANIFEST_VERSION,
            "media_type": self.media_type,
            "owner_id": self.owner_id,
            "taken_at": self.taken_at.isoformat(),
            "source_digest": self.source_digest,
            "original": self.original.as_dict(),
            "medium": self.medium.as_dict() if self.medium else None,
            "thumb": self.thumb.as_dict() if self.thumb else None,
            "poster": self.poster.as_dict() if self.poster else None,
        }
        _validate_against_schema(manifest)
        return manifest


def _validate_against_schema(payload: Dict[str, Any]) -> None:
    from .manifest_schema import Manifest

    # raises ValidationError on mismatch
    Manifest.model_validate(payload)
