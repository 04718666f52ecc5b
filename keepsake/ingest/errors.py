from __future__ import annotations

from typing import Optional, Sequence


class IngestError(Exception):
    """Base class for every failure that aborts an ingest call."""

    def __init__(self, message: str, *, filename: Optional[str] = None):
        super().__init__(message)
        self.filename = filename


class UnsupportedFormat(IngestError):
    """The filename extension is on neither allow-list."""

    def __init__(self, filename: str):
        super().__init__(f"Unsupported file format: {filename}", filename=filename)


class UploadTooLarge(IngestError):
    def __init__(self, filename: str, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"Upload {filename} is {size_bytes} bytes, above the {limit_bytes} byte limit",
            filename=filename,
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class DecodeFailure(IngestError):
    """The image bytes could not be decoded."""


class EncoderFailure(IngestError):
    """An external encoder invocation failed; ``stderr`` holds its diagnostics."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        stderr: str = "",
        filename: Optional[str] = None,
    ):
        detail = f"{message}: {stderr.strip()}" if stderr.strip() else message
        super().__init__(detail, filename=filename)
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


class EncoderTimeout(EncoderFailure):
    def __init__(self, *, command: Sequence[str], timeout_s: float, stderr: str = ""):
        super().__init__(
            f"Encoder did not finish within {timeout_s:g}s",
            command=command,
            stderr=stderr,
        )
        self.timeout_s = timeout_s


__all__ = [
    "IngestError",
    "UnsupportedFormat",
    "UploadTooLarge",
    "DecodeFailure",
    "EncoderFailure",
    "EncoderTimeout",
]
