from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import MANIFEST_VERSION

SchemaPath = Path(f"media/schema/keepsake_manifest_v{MANIFEST_VERSION}.json")

SHA256_PATTERN = r"^[0-9a-f]{64}$"


class VariantModel(BaseModel):
    """Schema for one stored variant."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1)
    width_px: int = Field(ge=0)
    height_px: int = Field(ge=0)
    size_bytes: int = Field(ge=0)
    sha256: str = Field(pattern=SHA256_PATTERN)


class Manifest(BaseModel):
    """Schema for the result of one ingest call."""

    model_config = ConfigDict(extra="forbid")

    schema_version: Literal[MANIFEST_VERSION] = Field(default=MANIFEST_VERSION)
    media_type: Literal["photo", "video"]
    owner_id: int
    taken_at: str
    source_digest: str = Field(pattern=SHA256_PATTERN)
    original: VariantModel
    medium: Optional[VariantModel]
    thumb: Optional[VariantModel]
    poster: Optional[VariantModel]

    @model_validator(mode="after")
    def _variants_match_media_type(self) -> "Manifest":
        if self.media_type == "photo" and self.poster is not None:
            raise ValueError("photos do not carry a poster frame")
        if self.media_type == "video" and (self.thumb is not None or self.medium is not None):
            raise ValueError("videos carry a poster instead of thumb/medium variants")
        return self


def export_schema(output_path: Path = SchemaPath) -> Path:
    """Serialise the current manifest schema to disk.

    Args:
        output_path: The path to write the schema to.

    Returns:
        The path the schema was written to.
    """
    schema = Manifest.model_json_schema()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(schema, indent=2, sort_keys=True))
    return output_path


__all__ = ["Manifest", "VariantModel", "SchemaPath", "export_schema"]
