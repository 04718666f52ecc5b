from __future__ import annotations

import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised runtime configuration for the Keepsake ingest pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="KEEPSAKE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", description="Deployment environment label.")
    log_level: str = Field(default="info")

    media_root: Path = Field(default_factory=lambda: Path("media"), description="Root for stored media and derivatives.")
    scratch_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()),
        description="Private working directory for encoder inputs.",
    )
    max_upload_size_bytes: int = Field(default=500 * 1024 * 1024, description="Hard limit for a single ingest payload.")

    thumb_size: int = Field(default=200, description="Edge length of the square thumbnail and poster.")
    thumb_quality: int = Field(default=85, description="JPEG quality for thumbnails.")
    medium_width: int = Field(default=800, description="Width threshold and target for the medium derivative.")
    medium_quality: int = Field(default=90, description="JPEG quality for medium derivatives.")

    encoder_binary: str = Field(default="ffmpeg")
    probe_binary: str = Field(default="ffprobe")
    video_codec: str = Field(default="libx264")
    video_preset: str = Field(default="medium")
    video_crf: int = Field(default=23, description="Quality/size tradeoff for the re-encode.")
    audio_codec: str = Field(default="aac")
    audio_bitrate: str = Field(default="128k")
    poster_offset_s: float = Field(default=1.0, description="Timestamp of the poster frame in seconds.")
    encoder_timeout_s: float = Field(default=15 * 60.0, description="Wall clock limit for one encoder invocation.")
    max_concurrent_encoders: int = Field(default=2, description="Encoder processes allowed to run at once.")

    job_queue_backend: Literal["immediate", "inline", "threadpool"] = Field(
        default="immediate",
        description="Backend for submitted ingest jobs (immediate runs inline; threadpool uses a bounded pool).",
    )
    ingest_workers: int = Field(default=4, description="Worker threads for the threadpool backend.")
    ingest_queue_size: int = Field(default=16, ge=0, description="Jobs allowed to wait for a worker before submit blocks.")
    ingest_submit_timeout_s: Optional[float] = Field(
        default=None,
        description="How long submit waits for queue room before raising; unset waits indefinitely.",
    )

    @field_validator("thumb_size", "medium_width", "max_concurrent_encoders", "ingest_workers")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("thumb_quality", "medium_quality")
    @classmethod
    def _jpeg_quality(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("JPEG quality must be between 1 and 100")
        return value

    @property
    def normalized_job_backend(self) -> str:
        if self.job_queue_backend == "inline":
            return "immediate"
        return self.job_queue_backend


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "MEDIA_PATH": "KEEPSAKE_MEDIA_ROOT",
        "KEEPSAKE_ENV": "KEEPSAKE_ENVIRONMENT",
        "KEEPSAKE_JOB_BACKEND": "KEEPSAKE_JOB_QUEUE_BACKEND",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value and not os.getenv(target):
            os.environ[target] = value

    return Settings()


__all__ = ["Settings", "get_settings"]
