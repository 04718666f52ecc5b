from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence

from keepsake.core.config import Settings
from keepsake.core.jobs import EncoderSlots, get_encoder_slots
from keepsake.core.logging import get_logger

from .errors import EncoderFailure, EncoderTimeout

__all__ = ["EncoderResult", "Encoder", "binary_version"]


@dataclass(slots=True)
class EncoderResult:
    returncode: int
    stdout: str
    stderr: str


class Encoder:
    """Runs ffmpeg/ffprobe as child processes under a timeout and a concurrency gate."""

    def __init__(
        self,
        *,
        binary: str = "ffmpeg",
        probe_binary: str = "ffprobe",
        timeout_s: Optional[float] = None,
        slots: Optional[EncoderSlots] = None,
    ):
        self.binary = binary
        self.probe_binary = probe_binary
        self.timeout_s = timeout_s
        self.slots = slots or EncoderSlots(1)
        self.logger = get_logger(component="encoder")

    @classmethod
    def from_settings(cls, settings: Settings, slots: Optional[EncoderSlots] = None) -> "Encoder":
        return cls(
            binary=settings.encoder_binary,
            probe_binary=settings.probe_binary,
            timeout_s=settings.encoder_timeout_s,
            slots=slots or get_encoder_slots(settings.max_concurrent_encoders),
        )

    def encode(self, args: Sequence[str], *, purpose: str) -> EncoderResult:
        """Run the encoder binary; raise ``EncoderFailure`` unless it exits 0."""
        command = [self.binary, "-nostdin", "-hide_banner", *args]
        result = self.execute(command, purpose=purpose)
        if result.returncode != 0:
            self.logger.warning("encoder_failed", purpose=purpose, returncode=result.returncode, stderr=result.stderr)
            raise EncoderFailure(
                f"{self.binary} {purpose} failed with code {result.returncode}",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def probe(self, args: Sequence[str]) -> EncoderResult:
        """Run the probe binary and return its output whatever the exit status."""
        return self.execute([self.probe_binary, *args], purpose="probe")

    def inspect(self, input_path: str) -> EncoderResult:
        """Let the encoder describe an input without producing output.

        ffmpeg exits non-zero here because no output is named; only the
        diagnostic text matters.
        """
        return self.execute([self.binary, "-nostdin", "-hide_banner", "-i", input_path], purpose="inspect")

    def execute(self, command: Sequence[str], *, purpose: str) -> EncoderResult:
        with self.slots.acquire(purpose):
            self.logger.debug("encoder_started", purpose=purpose, command=list(command))
            try:
                proc = subprocess.Popen(
                    list(command),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    errors="replace",
                    start_new_session=True,
                )
            except OSError as exc:
                raise EncoderFailure(f"Cannot start encoder binary {command[0]}: {exc}", command=command) from exc

            try:
                stdout, stderr = proc.communicate(timeout=self.timeout_s)
            except subprocess.TimeoutExpired:
                _kill_process_group(proc)
                stdout, stderr = proc.communicate()
                self.logger.error("encoder_timeout", purpose=purpose, timeout_s=self.timeout_s)
                raise EncoderTimeout(command=command, timeout_s=self.timeout_s or 0.0, stderr=stderr or "")
            except BaseException:
                _kill_process_group(proc)
                proc.wait()
                raise

        return EncoderResult(returncode=proc.returncode, stdout=stdout or "", stderr=stderr or "")


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


@lru_cache(maxsize=4)
def binary_version(cmd: Sequence[str]) -> str:
    """Get the version of a binary.

    Args:
        cmd: The command to run.

    Returns:
        The first line of its version banner, or "unknown" if it can't be determined.
    """
    try:
        proc = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "unknown"
    output = proc.stdout.strip() or proc.stderr.strip()
    if not output:
        return "unknown"
    return output.splitlines()[0].strip()
