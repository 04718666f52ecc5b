from __future__ import annotations

from pathlib import Path

from keepsake.ingest.digest import compute_digest, compute_file_digest

HELLO_WORLD_SHA256 = "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"


def test_compute_digest_is_sha256_hex():
    assert compute_digest(b"hello world") == HELLO_WORLD_SHA256


def test_compute_digest_is_deterministic_and_content_sensitive():
    assert compute_digest(b"abc") == compute_digest(b"abc")
    assert compute_digest(b"abc") != compute_digest(b"abd")
    assert len(compute_digest(b"")) == 64


def test_compute_file_digest_matches_in_memory(tmp_path: Path):
    sample = tmp_path / "sample.bin"
    sample.write_bytes(b"hello world")
    assert compute_file_digest(sample) == HELLO_WORLD_SHA256
    assert compute_file_digest(sample, chunk_size=3) == HELLO_WORLD_SHA256
