from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from keepsake.core.logging import get_logger

from .encoder import Encoder
from .errors import EncoderFailure
from .models import UNKNOWN_DIMENSIONS, Dimensions

__all__ = ["ProbeResult", "probe_video", "parse_ffprobe_json", "parse_encoder_diagnostics"]

ProbeSource = Literal["ffprobe", "diagnostics", "none"]

# "Stream #0:0(und): Video: h264 (High) (avc1 / 0x31637661), yuv420p, 1920x1080 [SAR 1:1 DAR 16:9]"
# The two-digit minimum keeps codec tags such as 0x31637661 from matching.
_DIAGNOSTIC_DIMENSIONS = re.compile(r"Stream #\S+.*?Video:.*?\b(\d{2,5})x(\d{2,5})\b")
_DIAGNOSTIC_DURATION = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

logger = get_logger(component="video_probe")


@dataclass(slots=True)
class ProbeResult:
    dimensions: Dimensions
    duration_s: Optional[float]
    source: ProbeSource


def probe_video(encoder: Encoder, input_path: str) -> ProbeResult:
    """Return the display dimensions and duration of a video file.

    The structured ffprobe report is preferred. When it is unavailable the
    encoder's human-readable diagnostics are matched instead, and when that
    also fails the dimensions stay at the unknown sentinel.
    """
    result = _probe_structured(encoder, input_path)
    if result is not None and result.dimensions.is_known:
        return result

    try:
        diagnostics = encoder.inspect(input_path)
    except EncoderFailure as exc:
        logger.warning("probe_inspect_failed", path=input_path, error=str(exc))
        diagnostics = None

    fallback = parse_encoder_diagnostics(diagnostics.stderr) if diagnostics else None
    if fallback is not None and fallback.dimensions.is_known:
        if fallback.duration_s is None and result is not None:
            fallback.duration_s = result.duration_s
        return fallback

    logger.warning("probe_parse_miss", path=input_path)
    duration = result.duration_s if result else (fallback.duration_s if fallback else None)
    return ProbeResult(dimensions=UNKNOWN_DIMENSIONS, duration_s=duration, source="none")


def _probe_structured(encoder: Encoder, input_path: str) -> Optional[ProbeResult]:
    try:
        proc = encoder.probe(
            [
                "-v",
                "error",
                "-show_format",
                "-show_streams",
                "-print_format",
                "json",
                input_path,
            ]
        )
    except EncoderFailure as exc:
        logger.debug("ffprobe_unavailable", error=str(exc))
        return None
    if proc.returncode != 0:
        logger.debug("ffprobe_failed", returncode=proc.returncode, stderr=proc.stderr.strip()[:500])
        return None
    try:
        raw = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError:
        logger.debug("ffprobe_output_unparseable")
        return None
    return parse_ffprobe_json(raw)


def parse_ffprobe_json(raw: Dict[str, Any]) -> ProbeResult:
    """Normalise ffprobe JSON into display dimensions and duration.

    Args:
        raw: The raw ffprobe JSON.

    Returns:
        The probe result; dimensions are unknown when no video stream reports them.
    """
    duration_s = _parse_duration((raw.get("format") or {}).get("duration"))
    video_streams = [
        stream
        for stream in raw.get("streams") or []
        if isinstance(stream, dict) and str(stream.get("codec_type", "")).lower() == "video"
    ]
    if not video_streams:
        return ProbeResult(dimensions=UNKNOWN_DIMENSIONS, duration_s=duration_s, source="ffprobe")

    selected = _select_video_stream(video_streams)
    width = _int_or_none(selected.get("width")) or 0
    height = _int_or_none(selected.get("height")) or 0
    if _is_quarter_turn(selected):
        width, height = height, width
    if duration_s is None:
        duration_s = _parse_duration(selected.get("duration"))
    return ProbeResult(dimensions=Dimensions(width, height), duration_s=duration_s, source="ffprobe")


def parse_encoder_diagnostics(text: str) -> ProbeResult:
    """Match dimensions and duration in ffmpeg's human-readable input report."""
    duration_s: Optional[float] = None
    duration_match = _DIAGNOSTIC_DURATION.search(text)
    if duration_match:
        hours, minutes, seconds = duration_match.groups()
        duration_s = int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    match = _DIAGNOSTIC_DIMENSIONS.search(text)
    if not match:
        return ProbeResult(dimensions=UNKNOWN_DIMENSIONS, duration_s=duration_s, source="none")
    return ProbeResult(
        dimensions=Dimensions(int(match.group(1)), int(match.group(2))),
        duration_s=duration_s,
        source="diagnostics",
    )


def _select_video_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Select the default video stream, else the one with the most pixels.

    Attached cover art is ignored unless it is the only video stream.
    """
    candidates = [stream for stream in streams if not _disposition_flag(stream, "attached_pic")] or streams
    default_streams = [stream for stream in candidates if _disposition_flag(stream, "default")]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> int:
        return (_int_or_none(item.get("width")) or 0) * (_int_or_none(item.get("height")) or 0)

    return max(candidates, key=score)


def _disposition_flag(stream: Dict[str, Any], flag: str) -> bool:
    disposition = stream.get("disposition")
    if not isinstance(disposition, dict):
        return False
    return bool(disposition.get(flag))


def _is_quarter_turn(stream: Dict[str, Any]) -> bool:
    rotation: Optional[float] = None
    tags = stream.get("tags")
    if isinstance(tags, dict) and tags.get("rotate") not in (None, ""):
        rotation = _float_or_none(tags.get("rotate"))
    for side_data in stream.get("side_data_list") or []:
        if isinstance(side_data, dict) and "rotation" in side_data:
            rotation = _float_or_none(side_data.get("rotation"))
    if rotation is None:
        return False
    return int(round(rotation)) % 180 == 90


def _parse_duration(raw_value: Any) -> Optional[float]:
    if raw_value in (None, "N/A", ""):
        return None
    value = _float_or_none(raw_value)
    if value is None or value < 0:
        return None
    return value


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float_or_none(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
