"""Tests for batch digests and the batch generator."""

from __future__ import annotations

from fractions import Fraction

import pytest
from blake3 import blake3

from attestor.batching.batch import (
    Batch,
    Window,
    build_batch,
    compute_threshold,
    encode_bitmap,
    hash_bitmap,
    verify_batch,
)
from attestor.batching.generator import BatchGenerator
from attestor.sampling.ring_buffer import RingBuffer
from conftest import make_samples


# ── Threshold ────────────────────────────────────────────────────────────────


class TestThreshold:
    @pytest.mark.parametrize(
        "n,fraction,expected",
        [
            (20, 0.95, 19),
            (19, 0.95, 19),
            (1, 0.95, 1),
            (0, 0.95, 0),
            (100, 0.95, 95),
            (288, 0.95, 274),
            (10, 1.0, 10),
            (3, 0.5, 2),
            (60, 0.9, 54),
        ],
    )
    def test_exact_ceiling(self, n: int, fraction: float, expected: int) -> None:
        assert compute_threshold(n, fraction) == expected

    def test_accepts_fraction_and_string(self) -> None:
        assert compute_threshold(20, Fraction(19, 20)) == 19
        assert compute_threshold(20, "0.95") == 19

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            compute_threshold(10, 0)
        with pytest.raises(ValueError):
            compute_threshold(-1, 0.5)


# ── Bitmap + hash ────────────────────────────────────────────────────────────


class TestBitmapHash:
    def test_bitmap_encoding(self) -> None:
        assert encode_bitmap(make_samples("1101")) == b"\x01\x01\x00\x01"

    def test_hash_is_blake3_of_bitmap_and_salt(self) -> None:
        bitmap = b"\x01\x00\x01"
        assert hash_bitmap(bitmap, b"salt") == blake3(b"\x01\x00\x01salt").hexdigest()
        assert len(hash_bitmap(bitmap)) == 64

    def test_deterministic(self) -> None:
        bitmap = encode_bitmap(make_samples("1" * 19 + "0"))
        assert hash_bitmap(bitmap, b"run-1") == hash_bitmap(bitmap, b"run-1")

    def test_single_bit_flip_changes_hash(self) -> None:
        bits = "1" * 20
        base = hash_bitmap(encode_bitmap(make_samples(bits)))
        for i in range(len(bits)):
            flipped = bits[:i] + "0" + bits[i + 1:]
            assert hash_bitmap(encode_bitmap(make_samples(flipped))) != base

    def test_salt_separates_runs(self) -> None:
        bitmap = b"\x01" * 10
        assert hash_bitmap(bitmap, b"a") != hash_bitmap(bitmap, b"b")


# ── Batch ────────────────────────────────────────────────────────────────────


class TestBuildBatch:
    def test_counts_and_window(self) -> None:
        samples = make_samples("1" * 18 + "00", start=1000, step=30)
        batch, bitmap = build_batch(samples, 0.95, b"")
        assert batch.n == 20
        assert batch.good == 18
        assert batch.good + batch.failed == batch.n
        assert batch.threshold == 19
        assert not batch.meets_threshold
        assert batch.window == Window(start=1000, end=1000 + 19 * 30)
        assert bitmap == b"\x01" * 18 + b"\x00\x00"

    def test_record_shape(self) -> None:
        batch, _ = build_batch(make_samples("11"), 0.95)
        d = batch.to_dict()
        assert set(d) == {"n", "good", "threshold", "bitmap_hash", "window"}
        assert set(d["window"]) == {"start", "end"}
        assert Batch.from_dict(d) == batch

    def test_reproducible_from_same_samples(self) -> None:
        samples = make_samples("1011011101")
        assert build_batch(samples, 0.95, b"x") == build_batch(list(samples), 0.95, b"x")

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError):
            build_batch([], 0.95)

    def test_verify_batch(self) -> None:
        batch, bitmap = build_batch(make_samples("1110"), 0.5, b"s")
        assert verify_batch(batch, bitmap, 0.5, b"s")
        assert not verify_batch(batch, bitmap, 0.5, b"other-salt")
        assert not verify_batch(batch, b"\x01\x01\x01\x01", 0.5, b"s")
        assert not verify_batch(batch, b"\x01\x01\x01\x02", 0.5, b"s")


# ── Generator ────────────────────────────────────────────────────────────────


def _fill(buf: RingBuffer, bits: str) -> None:
    for s in make_samples(bits):
        buf.append(s)


class TestBatchGenerator:
    def test_empty_buffer_skips(self) -> None:
        gen = BatchGenerator(RingBuffer(4), window_samples=4)
        assert gen.generate() is None
        assert gen.skipped == 1

    def test_partial_window_skipped_by_default(self) -> None:
        buf = RingBuffer(4)
        _fill(buf, "11")
        gen = BatchGenerator(buf, window_samples=4)
        assert gen.generate() is None
        assert gen.last_batch is None

    def test_partial_window_when_enabled(self) -> None:
        buf = RingBuffer(4)
        _fill(buf, "10")
        gen = BatchGenerator(buf, window_samples=4, partial_batches=True)
        batch, bitmap = gen.generate()
        assert batch.n == 2
        assert batch.good == 1
        assert bitmap == b"\x01\x00"

    def test_full_window(self) -> None:
        buf = RingBuffer(4)
        _fill(buf, "1111")
        batch, _ = BatchGenerator(buf, window_samples=4, threshold_fraction=0.95).generate()
        assert (batch.n, batch.good, batch.threshold) == (4, 4, 4)
        assert batch.meets_threshold

    def test_uses_most_recent_window_when_capacity_larger(self) -> None:
        buf = RingBuffer(8)
        _fill(buf, "000011")
        gen = BatchGenerator(buf, window_samples=2)
        batch, bitmap = gen.generate()
        assert batch.n == 2
        assert bitmap == b"\x01\x01"
        snap = buf.snapshot()
        assert batch.window == Window(snap[-2].timestamp, snap[-1].timestamp)

    def test_salt_applied(self) -> None:
        buf = RingBuffer(2)
        _fill(buf, "11")
        batch, bitmap = BatchGenerator(buf, window_samples=2, salt=b"deploy").generate()
        assert batch.bitmap_hash == hash_bitmap(bitmap, b"deploy")

    def test_capacity_smaller_than_window_rejected(self) -> None:
        with pytest.raises(ValueError):
            BatchGenerator(RingBuffer(2), window_samples=4)
