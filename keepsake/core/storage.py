from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from uuid import uuid4

from .config import Settings


@dataclass(slots=True)
class StorageStat:
    size_bytes: int


class LocalStorage:
    """Filesystem-backed media store rooted at ``base_path``.

    Keys are relative POSIX paths as produced by the path deriver. Writes never
    replace an existing file: content is staged in a temporary file beside the
    target and hard-linked into place, so the first completed writer wins and
    readers never observe a torn file.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def resolve(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Storage keys must be relative paths inside the media root: {key!r}")
        return self.base_path.joinpath(*relative.parts)

    def exists(self, key: str) -> bool:
        return self.resolve(key).exists()

    def stat(self, key: str) -> StorageStat:
        path = self.resolve(key)
        if not path.exists():
            raise FileNotFoundError(key)
        return StorageStat(size_bytes=path.stat().st_size)

    def read_bytes(self, key: str) -> bytes:
        return self.resolve(key).read_bytes()

    def partial_path(self, key: str) -> Path:
        """Return a unique staging path in the target's directory, keeping its suffix."""
        target = self.resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.with_name(f".{target.stem}.{uuid4().hex[:12]}.partial{target.suffix}")

    def publish_bytes(self, key: str, payload: bytes) -> bool:
        """Store ``payload`` at ``key`` unless a file already exists there.

        Returns True when this call created the file.
        """
        target = self.resolve(key)
        if target.exists():
            return False
        # Opened like any other new file so the stored mode follows the umask,
        # matching what the encoder writes.
        staging = self.partial_path(key)
        try:
            with open(staging, "xb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
        except BaseException:
            staging.unlink(missing_ok=True)
            raise
        return self.publish_file(staging, key)

    def publish_file(self, staging: Path, key: str) -> bool:
        """Move a completed staging file to ``key`` if nothing is there yet.

        The staging file is always removed. Returns True when this call created
        the target.
        """
        target = self.resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.link(staging, target)
        except FileExistsError:
            return False
        finally:
            staging.unlink(missing_ok=True)
        return True


def get_storage(settings: Settings) -> LocalStorage:
    return LocalStorage(base_path=Path(settings.media_root))


__all__ = ["LocalStorage", "StorageStat", "get_storage"]
