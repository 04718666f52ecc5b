import json
import os
import shutil
import subprocess
from functools import lru_cache
from pathlib import Path

import cv2
import numpy as np
import pytest

from keepsake.core.config import get_settings
from keepsake.ingest.encoder import Encoder, EncoderResult
from keepsake.ingest.errors import EncoderFailure


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "no_default_env: disable the default Keepsake environment bootstrap fixture for tests that manage their own .env",
    )
    config.addinivalue_line("markers", "ffmpeg: needs ffmpeg and ffprobe with libx264 on PATH")


@pytest.fixture(autouse=True)
def configure_environment(request, monkeypatch, tmp_path):
    if request.node.get_closest_marker("no_default_env"):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()
        return

    for key in list(os.environ.keys()):
        if key.startswith("KEEPSAKE_") or key == "MEDIA_PATH":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("KEEPSAKE_ENV", "test")
    monkeypatch.setenv("KEEPSAKE_LOG_LEVEL", "debug")
    monkeypatch.setenv("KEEPSAKE_MEDIA_ROOT", str(tmp_path / "media"))
    monkeypatch.setenv("KEEPSAKE_SCRATCH_DIR", str(tmp_path / "scratch"))
    monkeypatch.setenv("KEEPSAKE_JOB_BACKEND", "inline")
    monkeypatch.setenv("KEEPSAKE_ENCODER_TIMEOUT_S", "120")

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings(configure_environment):
    return get_settings()


@pytest.fixture()
def media_root(settings) -> Path:
    return Path(settings.media_root)


@pytest.fixture()
def scratch_dir(settings) -> Path:
    return Path(settings.scratch_dir)


def make_image_bytes(width: int, height: int, ext: str = ".jpg") -> bytes:
    """Encode a gradient test card of the given size."""
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[..., 0] = xs[np.newaxis, :].astype(np.uint8)
    image[..., 1] = ys[:, np.newaxis].astype(np.uint8)
    image[..., 2] = 128
    ok, encoded = cv2.imencode(ext, image)
    assert ok
    return encoded.tobytes()


def stored_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return sorted(path for path in root.rglob("*") if path.is_file())


class StubEncoder(Encoder):
    """Stands in for ffmpeg: copies the input on transcode and paints a poster frame."""

    def __init__(
        self,
        *,
        fail_on: str | None = None,
        width: int = 1280,
        height: int = 720,
        duration_s: float = 4.0,
        probe_ok: bool = True,
    ):
        super().__init__(binary="stub-ffmpeg", probe_binary="stub-ffprobe", timeout_s=5)
        self.fail_on = fail_on
        self.width = width
        self.height = height
        self.duration_s = duration_s
        self.probe_ok = probe_ok
        self.calls: list[tuple[str, list[str]]] = []

    @property
    def encode_purposes(self) -> list[str]:
        return [purpose for purpose, _ in self.calls if purpose in {"transcode", "poster"}]

    def probe(self, args):
        self.calls.append(("probe", list(args)))
        if not self.probe_ok:
            return EncoderResult(returncode=1, stdout="", stderr="stub-ffprobe: unreadable")
        payload = {
            "format": {"duration": str(self.duration_s)},
            "streams": [
                {"index": 0, "codec_type": "video", "width": self.width, "height": self.height},
                {"index": 1, "codec_type": "audio", "channels": 2},
            ],
        }
        return EncoderResult(returncode=0, stdout=json.dumps(payload), stderr="")

    def inspect(self, input_path):
        self.calls.append(("inspect", [input_path]))
        return EncoderResult(returncode=1, stdout="", stderr="At least one output file must be specified")

    def encode(self, args, *, purpose):
        args = list(args)
        self.calls.append((purpose, args))
        if purpose == self.fail_on:
            raise EncoderFailure(
                f"stub-ffmpeg {purpose} failed with code 1",
                command=args,
                returncode=1,
                stderr="Invalid data found when processing input",
            )
        output = Path(args[-1])
        if purpose == "transcode":
            source = Path(args[args.index("-i") + 1])
            output.write_bytes(b"stub-mp4:" + source.read_bytes())
        elif purpose == "poster":
            frame = np.full((200, 200, 3), 90, dtype=np.uint8)
            assert cv2.imwrite(str(output), frame)
        return EncoderResult(returncode=0, stdout="", stderr="")


@lru_cache(maxsize=1)
def ffmpeg_ready() -> bool:
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        return False
    proc = subprocess.run(["ffmpeg", "-hide_banner", "-encoders"], capture_output=True, text=True)
    return proc.returncode == 0 and "libx264" in proc.stdout


requires_ffmpeg = pytest.mark.skipif(not ffmpeg_ready(), reason="ffmpeg/ffprobe with libx264 not available")


@pytest.fixture(scope="session")
def generated_mov_file(tmp_path_factory) -> Path:
    """
    Generates a small, valid QuickTime file with audio for testing in a temporary directory.
    """
    if not ffmpeg_ready():
        pytest.skip("ffmpeg/ffprobe with libx264 not available")
    video_path = tmp_path_factory.mktemp("data") / "clip.mov"

    # 2 seconds of test pattern at 320x240 with a sine tone
    command = [
        "ffmpeg",
        "-f", "lavfi",
        "-i", "testsrc=size=320x240:rate=25",
        "-f", "lavfi",
        "-i", "sine=frequency=440:sample_rate=44100",
        "-t", "2",
        "-c:v", "mpeg4",
        "-c:a", "aac",
        "-pix_fmt", "yuv420p",
        str(video_path),
    ]
    subprocess.run(command, check=True, capture_output=True)
    return video_path
