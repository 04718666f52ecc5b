from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

import cv2  # type: ignore

from keepsake.core.config import Settings
from keepsake.core.logging import get_logger
from keepsake.core.storage import LocalStorage

from .digest import compute_digest, compute_file_digest
from .encoder import Encoder
from .errors import EncoderFailure
from .formats import extension_of
from .models import UNKNOWN_DIMENSIONS, Dimensions, ProcessedVariant, VariantSet
from .paths import derive_paths
from .probe import probe_video

__all__ = ["VideoTranscoder", "NORMALIZED_VIDEO_EXT", "POSTER_EXT"]

NORMALIZED_VIDEO_EXT = ".mp4"
POSTER_EXT = ".jpg"


class VideoTranscoder:
    """Re-encodes an uploaded video for the web and extracts a square poster frame."""

    def __init__(self, settings: Settings, storage: LocalStorage, encoder: Encoder):
        self.settings = settings
        self.storage = storage
        self.encoder = encoder
        self.logger = get_logger(component="video_ingest")

    def process(self, data: bytes, filename: str, owner_id: int, taken_at: date) -> VariantSet:
        digest = compute_digest(data)
        paths = derive_paths(owner_id, taken_at, digest, NORMALIZED_VIDEO_EXT, thumb_ext=POSTER_EXT)
        log = self.logger.bind(filename=filename, owner_id=owner_id, digest=digest)

        scratch = self._scratch_path(digest, extension_of(filename))
        partials: List[Path] = []
        try:
            scratch.write_bytes(data)
            probed = probe_video(self.encoder, str(scratch))

            if self.storage.exists(paths.original):
                log.debug("derivative_exists", path=paths.original)
            else:
                self._transcode(scratch, paths.original, partials)
                log.info("video_transcoded", path=paths.original)
            original = self._describe_file(paths.original, probed.dimensions)

            if self.storage.exists(paths.thumb):
                log.debug("derivative_exists", path=paths.thumb)
            else:
                self._extract_poster(paths.original, paths.thumb, probed.duration_s, partials)
            poster = self._describe_file(paths.thumb, None)
        finally:
            scratch.unlink(missing_ok=True)
            for partial in partials:
                partial.unlink(missing_ok=True)

        log.info(
            "video_ingested",
            width=original.dimensions.width,
            height=original.dimensions.height,
            size_bytes=original.size_bytes,
            probe_source=probed.source,
        )
        return VariantSet(
            media_type="video",
            owner_id=owner_id,
            taken_at=taken_at,
            source_digest=digest,
            original=original,
            poster=poster,
        )

    def _scratch_path(self, digest: str, source_ext: str) -> Path:
        scratch_dir = Path(self.settings.scratch_dir)
        scratch_dir.mkdir(parents=True, exist_ok=True)
        return scratch_dir / f"keepsake-{digest}-{uuid4().hex[:8]}{source_ext}"

    def _transcode(self, source: Path, key: str, partials: List[Path]) -> None:
        staging = self.storage.partial_path(key)
        partials.append(staging)
        settings = self.settings
        self.encoder.encode(
            [
                "-i",
                str(source),
                "-c:v",
                settings.video_codec,
                "-preset",
                settings.video_preset,
                "-crf",
                str(settings.video_crf),
                "-pix_fmt",
                "yuv420p",
                "-c:a",
                settings.audio_codec,
                "-b:a",
                settings.audio_bitrate,
                "-movflags",
                "+faststart",
                "-f",
                "mp4",
                "-y",
                str(staging),
            ],
            purpose="transcode",
        )
        self._publish(staging, key, "transcode")

    def _extract_poster(self, original_key: str, key: str, duration_s: Optional[float], partials: List[Path]) -> None:
        staging = self.storage.partial_path(key)
        partials.append(staging)
        size = self.settings.thumb_size
        offset = self.settings.poster_offset_s
        if duration_s is not None and duration_s <= offset:
            offset = duration_s / 2.0
        self.encoder.encode(
            [
                "-ss",
                f"{max(offset, 0.0):.3f}",
                "-i",
                str(self.storage.resolve(original_key)),
                "-frames:v",
                "1",
                "-vf",
                f"scale={size}:{size}:force_original_aspect_ratio=increase,crop={size}:{size}",
                "-q:v",
                "2",
                "-f",
                "image2",
                "-y",
                str(staging),
            ],
            purpose="poster",
        )
        self._publish(staging, key, "poster")

    def _publish(self, staging: Path, key: str, purpose: str) -> None:
        if not staging.exists() or staging.stat().st_size == 0:
            raise EncoderFailure(f"{self.encoder.binary} {purpose} produced no output for {key}")
        if not self.storage.publish_file(staging, key):
            self.logger.debug("derivative_exists", path=key)

    def _describe_file(self, key: str, dimensions: Optional[Dimensions]) -> ProcessedVariant:
        path = self.storage.resolve(key)
        if dimensions is None:
            dimensions = _image_dimensions(path)
        return ProcessedVariant(
            path=key,
            dimensions=dimensions,
            size_bytes=self.storage.stat(key).size_bytes,
            sha256=compute_file_digest(path),
        )


def _image_dimensions(image_path: Path) -> Dimensions:
    image = cv2.imread(str(image_path))
    if image is None:
        return UNKNOWN_DIMENSIONS
    height, width = image.shape[:2]
    return Dimensions(int(width), int(height))
