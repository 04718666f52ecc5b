from __future__ import annotations

import stat
from pathlib import Path

import pytest

from keepsake.core.config import get_settings
from keepsake.core.storage import LocalStorage, get_storage


def test_get_storage_uses_media_root(media_root: Path):
    storage = get_storage(get_settings())
    assert isinstance(storage, LocalStorage)
    assert storage.base_path == media_root
    assert media_root.is_dir()


def test_publish_bytes_writes_once(tmp_path: Path):
    storage = LocalStorage(tmp_path / "root")

    assert storage.publish_bytes("1/2024/01/abc.jpg", b"first") is True
    assert storage.publish_bytes("1/2024/01/abc.jpg", b"second") is False

    assert storage.read_bytes("1/2024/01/abc.jpg") == b"first"
    assert storage.stat("1/2024/01/abc.jpg").size_bytes == 5


def test_publish_leaves_no_staging_files(tmp_path: Path):
    storage = LocalStorage(tmp_path)
    storage.publish_bytes("a/b.bin", b"payload")
    storage.publish_bytes("a/b.bin", b"payload")

    names = sorted(p.name for p in (tmp_path / "a").iterdir())
    assert names == ["b.bin"]


def test_publish_file_keeps_existing_target_and_removes_staging(tmp_path: Path):
    storage = LocalStorage(tmp_path)
    storage.publish_bytes("clip.mp4", b"winner")

    staging = storage.partial_path("clip.mp4")
    staging.write_bytes(b"loser")
    assert storage.publish_file(staging, "clip.mp4") is False
    assert not staging.exists()
    assert storage.read_bytes("clip.mp4") == b"winner"


def test_partial_path_is_unique_sibling_with_same_suffix(tmp_path: Path):
    storage = LocalStorage(tmp_path)
    first = storage.partial_path("3/2022/11/thumbs/abc.jpg")
    second = storage.partial_path("3/2022/11/thumbs/abc.jpg")
    assert first != second
    assert first.parent == tmp_path / "3" / "2022" / "11" / "thumbs"
    assert first.suffix == ".jpg"
    assert first.parent.is_dir()


@pytest.mark.parametrize("key", ["../escape.jpg", "/etc/passwd", "a/../../b", ""])
def test_resolve_rejects_keys_outside_root(tmp_path: Path, key: str):
    storage = LocalStorage(tmp_path)
    with pytest.raises(ValueError):
        storage.resolve(key)


def test_stat_missing_key_raises(tmp_path: Path):
    storage = LocalStorage(tmp_path)
    with pytest.raises(FileNotFoundError):
        storage.stat("missing.jpg")


def test_published_bytes_follow_the_umask(tmp_path: Path):
    storage = LocalStorage(tmp_path / "root")
    storage.publish_bytes("1/2024/01/abc.jpg", b"payload")

    reference = tmp_path / "reference"
    reference.write_bytes(b"")
    stored = storage.resolve("1/2024/01/abc.jpg")
    assert stat.S_IMODE(stored.stat().st_mode) == stat.S_IMODE(reference.stat().st_mode)
