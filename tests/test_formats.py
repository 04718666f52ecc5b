from __future__ import annotations

import pytest

from keepsake.ingest.formats import (
    MediaKind,
    classify,
    extension_of,
    is_image_format,
    is_supported_format,
    is_video_format,
)


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("IMG_0001.jpg", MediaKind.image),
        ("IMG_0001.JPEG", MediaKind.image),
        ("scan.png", MediaKind.image),
        ("loop.gif", MediaKind.image),
        ("iphone.HEIC", MediaKind.image),
        ("sticker.webp", MediaKind.image),
        ("clip.mp4", MediaKind.video),
        ("clip.MOV", MediaKind.video),
        ("old.avi", MediaKind.video),
        ("movie.mkv", MediaKind.video),
        ("notes.txt", MediaKind.unsupported),
        ("archive.tar.gz", MediaKind.unsupported),
        ("README", MediaKind.unsupported),
        ("", MediaKind.unsupported),
    ],
)
def test_classify_uses_extension_only(filename, expected):
    assert classify(filename) is expected


def test_classify_ignores_directories_and_dots_in_name():
    assert classify("/uploads/v1.2/holiday.final.jpg") is MediaKind.image
    assert classify("photos.jpg/clip.mov") is MediaKind.video


def test_extension_of_lowercases():
    assert extension_of("Photo.JPG") == ".jpg"
    assert extension_of("noext") == ""


def test_predicates_agree_with_classify():
    assert is_image_format("a.png") and not is_video_format("a.png")
    assert is_video_format("a.mkv") and not is_image_format("a.mkv")
    assert is_supported_format("a.webp")
    assert not is_supported_format("a.pdf")
