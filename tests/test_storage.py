"""Tests for local artifact files."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from attestor.batching.batch import build_batch
from attestor.proofs.prover import MockProver
from attestor.storage import ArtifactStore, atomic_write
from conftest import make_samples


class TestAtomicWrite:
    def test_writes_and_replaces(self, tmp_path):
        path = tmp_path / "out" / "file.json"
        atomic_write(path, "one")
        atomic_write(path, "two")
        assert path.read_text() == "two"
        assert [p.name for p in path.parent.iterdir()] == ["file.json"]

    def test_failed_write_keeps_previous_file(self, tmp_path):
        path = tmp_path / "file.json"
        atomic_write(path, "old")
        with patch("attestor.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write(path, "new")
        assert path.read_text() == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


class TestArtifactStore:
    def test_empty_directory(self, tmp_path):
        store = ArtifactStore(tmp_path)
        assert store.load_samples() == []
        assert store.load_batch() is None
        assert store.load_proof() is None

    def test_samples_file(self, tmp_path):
        store = ArtifactStore(tmp_path)
        samples = make_samples("1011")
        store.save_samples(samples)
        raw = json.loads((tmp_path / "samples.json").read_text())
        assert raw[1] == {
            "timestamp": samples[1].timestamp,
            "head": 100,
            "sampled_count": 100,
            "ok": False,
            "reason": "stuck",
        }
        assert store.load_samples() == samples

    def test_batch_and_bitmap_files(self, tmp_path):
        store = ArtifactStore(tmp_path)
        batch, bitmap = build_batch(make_samples("110"), 0.5, b"s")
        store.save_batch(batch, bitmap)
        assert (tmp_path / "bitmap.hex").read_text() == "010100"
        assert json.loads((tmp_path / "batch.json").read_text()) == batch.to_dict()
        assert store.load_batch() == (batch, bitmap)

    def test_proof_file(self, tmp_path):
        store = ArtifactStore(tmp_path)
        batch, bitmap = build_batch(make_samples("11"), 0.5)
        artifact = MockProver().prove(bitmap, batch.n, batch.threshold, batch.bitmap_hash)
        store.save_proof(artifact)
        assert store.load_proof() == artifact
