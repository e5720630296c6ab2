"""Tests for the bounded sample ring buffer."""

from __future__ import annotations

import threading

import pytest

from attestor.sampling.ring_buffer import BufferInvariantViolation, RingBuffer
from conftest import make_sample


class TestRingBuffer:
    def test_empty(self) -> None:
        buf = RingBuffer(capacity=3)
        assert len(buf) == 0
        assert buf.snapshot() == ()
        assert buf.latest() is None

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            RingBuffer(capacity=0)

    def test_evicts_oldest_after_capacity_plus_one(self) -> None:
        buf = RingBuffer(capacity=4)
        samples = [make_sample(ts) for ts in range(100, 105)]
        for s in samples:
            buf.append(s)
        assert len(buf) == 4
        assert buf.snapshot() == tuple(samples[1:])
        assert buf.evicted == 1

    def test_never_exceeds_capacity(self) -> None:
        buf = RingBuffer(capacity=5)
        for ts in range(50):
            buf.append(make_sample(ts))
            assert len(buf) <= 5
        assert [s.timestamp for s in buf.snapshot()] == [45, 46, 47, 48, 49]

    def test_equal_timestamps_allowed(self) -> None:
        buf = RingBuffer(capacity=3)
        buf.append(make_sample(10))
        buf.append(make_sample(10))
        assert len(buf) == 2

    def test_timestamp_regression_is_invariant_violation(self) -> None:
        buf = RingBuffer(capacity=3)
        buf.append(make_sample(10))
        with pytest.raises(BufferInvariantViolation, match="regression"):
            buf.append(make_sample(9))
        assert [s.timestamp for s in buf.snapshot()] == [10]

    def test_snapshot_is_immutable_copy(self) -> None:
        buf = RingBuffer(capacity=3)
        buf.append(make_sample(1))
        snap = buf.snapshot()
        buf.append(make_sample(2))
        assert len(snap) == 1
        assert isinstance(snap, tuple)

    def test_snapshot_consistent_under_concurrent_appends(self) -> None:
        buf = RingBuffer(capacity=8)
        bad = []

        def appender() -> None:
            for ts in range(5000):
                buf.append(make_sample(ts))

        def reader() -> None:
            for _ in range(2000):
                ts = [s.timestamp for s in buf.snapshot()]
                if ts != sorted(ts) or len(ts) > 8:
                    bad.append(ts)

        threads = [threading.Thread(target=appender), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert bad == []
