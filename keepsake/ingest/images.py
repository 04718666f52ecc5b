from __future__ import annotations

import math
from datetime import date
from typing import Optional

import cv2  # type: ignore
import numpy as np

from keepsake.core.config import Settings
from keepsake.core.logging import get_logger
from keepsake.core.storage import LocalStorage

from .digest import compute_digest
from .errors import DecodeFailure
from .formats import extension_of
from .models import UNKNOWN_DIMENSIONS, Dimensions, ProcessedVariant, VariantSet
from .paths import derive_paths

__all__ = ["ImageVariantGenerator", "decode_image", "cover_crop", "fit_width", "encode_jpeg"]


def decode_image(data: bytes, filename: str) -> np.ndarray:
    """Decode an in-memory image into a BGR pixel array.

    Raises:
        DecodeFailure: If the bytes are not an image OpenCV can read.
    """
    if not data:
        raise DecodeFailure(f"Empty image payload: {filename}", filename=filename)
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None or image.size == 0:
        raise DecodeFailure(f"Could not decode image data: {filename}", filename=filename)
    return image


def image_dimensions(image: np.ndarray) -> Dimensions:
    height, width = image.shape[:2]
    return Dimensions(int(width), int(height))


def cover_crop(image: np.ndarray, size: int) -> np.ndarray:
    """Scale ``image`` to cover a ``size`` square, then crop the centre."""
    height, width = image.shape[:2]
    scale = max(size / width, size / height)
    scaled_w = max(size, math.ceil(width * scale))
    scaled_h = max(size, math.ceil(height * scale))
    interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_CUBIC
    resized = cv2.resize(image, (scaled_w, scaled_h), interpolation=interpolation)
    left = (scaled_w - size) // 2
    top = (scaled_h - size) // 2
    return resized[top : top + size, left : left + size]


def fit_width(image: np.ndarray, max_width: int) -> np.ndarray:
    """Resize to ``max_width`` keeping the aspect ratio; never upscales."""
    height, width = image.shape[:2]
    if width <= max_width:
        return image
    target_h = max(1, round(height * max_width / width))
    return cv2.resize(image, (max_width, target_h), interpolation=cv2.INTER_AREA)


def encode_jpeg(image: np.ndarray, quality: int, filename: str) -> bytes:
    ok, encoded = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise DecodeFailure(f"Could not encode derivative for {filename}", filename=filename)
    return encoded.tobytes()


class ImageVariantGenerator:
    """Stores an uploaded image with its thumbnail and, for wide images, a medium copy."""

    def __init__(self, settings: Settings, storage: LocalStorage):
        self.settings = settings
        self.storage = storage
        self.logger = get_logger(component="image_ingest")

    def process(self, data: bytes, filename: str, owner_id: int, taken_at: date) -> VariantSet:
        digest = compute_digest(data)
        paths = derive_paths(owner_id, taken_at, digest, extension_of(filename))
        log = self.logger.bind(filename=filename, owner_id=owner_id, digest=digest)

        image = decode_image(data, filename)
        natural = image_dimensions(image)

        self._publish(paths.original, data, log)
        original = ProcessedVariant(path=paths.original, dimensions=natural, size_bytes=len(data), sha256=digest)

        thumb_bytes = encode_jpeg(cover_crop(image, self.settings.thumb_size), self.settings.thumb_quality, filename)
        thumb = self._store_derivative(paths.thumb, thumb_bytes, log)

        medium: Optional[ProcessedVariant] = None
        if natural.width > self.settings.medium_width:
            medium_bytes = encode_jpeg(
                fit_width(image, self.settings.medium_width), self.settings.medium_quality, filename
            )
            medium = self._store_derivative(paths.medium, medium_bytes, log)

        log.info(
            "image_ingested",
            width=natural.width,
            height=natural.height,
            size_bytes=len(data),
            medium=medium is not None,
        )
        return VariantSet(
            media_type="photo",
            owner_id=owner_id,
            taken_at=taken_at,
            source_digest=digest,
            original=original,
            medium=medium,
            thumb=thumb,
        )

    def _publish(self, key: str, payload: bytes, log) -> bool:
        created = self.storage.publish_bytes(key, payload)
        if not created:
            log.debug("derivative_exists", path=key)
        return created

    def _store_derivative(self, key: str, payload: bytes, log) -> ProcessedVariant:
        if self._publish(key, payload, log):
            stored = payload
        else:
            # An earlier ingest owns this key; describe the bytes on disk.
            stored = self.storage.read_bytes(key)
        dimensions = _encoded_dimensions(stored)
        return ProcessedVariant(path=key, dimensions=dimensions, size_bytes=len(stored), sha256=compute_digest(stored))


def _encoded_dimensions(payload: bytes) -> Dimensions:
    image = cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None:
        return UNKNOWN_DIMENSIONS
    return image_dimensions(image)

