from __future__ import annotations

import asyncio
from concurrent.futures import Future
from datetime import date, datetime, timezone
from typing import Optional

from keepsake.core.config import Settings, get_settings
from keepsake.core.jobs import BaseJobBackend, get_job_backend
from keepsake.core.logging import get_logger
from keepsake.core.storage import LocalStorage, get_storage

from .encoder import Encoder
from .errors import UnsupportedFormat, UploadTooLarge
from .formats import MediaKind, classify
from .images import ImageVariantGenerator
from .models import VariantSet
from .videos import VideoTranscoder

__all__ = ["MediaPipeline", "ingest"]


class MediaPipeline:
    """Entry point for turning an uploaded file into stored variants.

    One instance is safe to share between threads: it keeps no per-call state,
    and all of its encoder invocations share one concurrency gate.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Optional[LocalStorage] = None,
        encoder: Optional[Encoder] = None,
        backend: Optional[BaseJobBackend] = None,
    ):
        self.settings = settings
        self.storage = storage or get_storage(settings)
        self.encoder = encoder or Encoder.from_settings(settings)
        self.backend = backend or get_job_backend(settings)
        self.images = ImageVariantGenerator(settings, self.storage)
        self.videos = VideoTranscoder(settings, self.storage, self.encoder)
        self.logger = get_logger(component="media_pipeline")

    def ingest(
        self,
        data: bytes,
        filename: str,
        owner_id: int,
        taken_at: Optional[date] = None,
    ) -> VariantSet:
        """Store ``data`` and its derivatives; return what was written.

        Raises:
            UnsupportedFormat: The extension is not an accepted image or video type.
            UploadTooLarge: The payload exceeds the configured limit.
            DecodeFailure: The image could not be decoded.
            EncoderFailure: An encoder invocation failed or timed out.
        """
        kind = classify(filename)
        if kind is MediaKind.unsupported:
            self.logger.info("ingest_rejected", filename=filename, reason="unsupported_format")
            raise UnsupportedFormat(filename)
        if len(data) > self.settings.max_upload_size_bytes:
            self.logger.info("ingest_rejected", filename=filename, reason="too_large", size_bytes=len(data))
            raise UploadTooLarge(filename, len(data), self.settings.max_upload_size_bytes)

        captured = taken_at if taken_at is not None else datetime.now(timezone.utc)
        if kind is MediaKind.image:
            return self.images.process(data, filename, owner_id, captured)
        return self.videos.process(data, filename, owner_id, captured)

    def submit(
        self,
        data: bytes,
        filename: str,
        owner_id: int,
        taken_at: Optional[date] = None,
    ) -> Future[VariantSet]:
        return self.backend.submit(self.ingest, data, filename, owner_id, taken_at)

    async def aingest(
        self,
        data: bytes,
        filename: str,
        owner_id: int,
        taken_at: Optional[date] = None,
    ) -> VariantSet:
        return await asyncio.wrap_future(self.submit(data, filename, owner_id, taken_at))

    def close(self) -> None:
        self.backend.shutdown(wait=True)


def ingest(
    data: bytes,
    filename: str,
    owner_id: int,
    taken_at: Optional[date] = None,
    *,
    settings: Optional[Settings] = None,
) -> VariantSet:
    """Run one ingest with a pipeline built from the active settings."""
    pipeline = MediaPipeline(settings or get_settings())
    try:
        return pipeline.ingest(data, filename, owner_id, taken_at)
    finally:
        pipeline.close()
