from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
from pydantic import ValidationError

from keepsake.ingest import MANIFEST_VERSION
from keepsake.ingest.manifest_schema import Manifest, SchemaPath, export_schema
from keepsake.ingest.models import Dimensions, ProcessedVariant, VariantSet

DIGEST = "c0ffee" + "0" * 58


def _variant(path: str, size: int = 10) -> ProcessedVariant:
    return ProcessedVariant(path=path, dimensions=Dimensions(200, 200), size_bytes=size, sha256=DIGEST)


def test_export_schema_matches_model(tmp_path: Path):
    destination = tmp_path / SchemaPath.name
    path = export_schema(destination)
    assert path.exists()

    written = json.loads(path.read_text())
    expected = Manifest.model_json_schema()
    assert written == expected


def test_photo_manifest_validates():
    variants = VariantSet(
        media_type="photo",
        owner_id=7,
        taken_at=date(2024, 3, 10),
        source_digest=DIGEST,
        original=_variant(f"7/2024/03/{DIGEST}.jpg"),
        thumb=_variant(f"7/2024/03/thumbs/{DIGEST}.jpg"),
    )
    manifest = variants.to_manifest()
    assert manifest["schema_version"] == MANIFEST_VERSION
    assert manifest["medium"] is None
    assert manifest["original"]["width_px"] == 200
    assert set(variants.variants()) == {"original", "thumb"}


def test_video_manifest_rejects_thumb():
    variants = VariantSet(
        media_type="video",
        owner_id=3,
        taken_at=date(2022, 11, 1),
        source_digest=DIGEST,
        original=_variant(f"3/2022/11/{DIGEST}.mp4"),
        thumb=_variant(f"3/2022/11/thumbs/{DIGEST}.jpg"),
    )
    with pytest.raises(ValidationError):
        variants.to_manifest()


def test_manifest_rejects_malformed_digest():
    variants = VariantSet(
        media_type="photo",
        owner_id=1,
        taken_at=date(2024, 1, 1),
        source_digest="not-a-digest",
        original=_variant("1/2024/01/x.jpg"),
    )
    with pytest.raises(ValidationError):
        variants.to_manifest()
