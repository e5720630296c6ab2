"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from attestor.config import Settings
from attestor.ledger.mock import MockLedger
from attestor.sampling.models import ReasonCode, Sample
from attestor.sampling.ring_buffer import RingBuffer
from attestor.sampling.snapshot import HealthSnapshotStore

# Deterministic 32-byte seeds for signing tests
SIGNING_SEED = "11" * 32
PROVER_SEED = "22" * 32


def make_sample(timestamp: int, ok: bool = True, head: int | None = 100) -> Sample:
    code = ReasonCode.ADVANCED if ok else ReasonCode.STUCK
    return Sample(
        timestamp=timestamp,
        head=head,
        sampled_count=head,
        ok=ok,
        code=code,
        reason="advanced(+1)" if ok else "stuck",
    )


def make_samples(bits: str, start: int = 1_700_000_000, step: int = 30) -> list[Sample]:
    """Samples from a string of '1'/'0' bits."""
    return [make_sample(start + i * step, ok=(b == "1")) for i, b in enumerate(bits)]


@pytest.fixture
def cfg(tmp_path: Path) -> Settings:
    """Small-window settings writing into a temp data dir."""
    return Settings(
        tick_secs=30,
        window_secs=120,
        max_staleness_secs=120,
        grace_period_secs=45,
        data_dir=str(tmp_path / "data"),
        signing_key_hex=SIGNING_SEED,
        prover_key_hex=PROVER_SEED,
        post_backoff_secs=0.0,
        post_retry_attempts=1,
    )


@pytest.fixture
def store() -> HealthSnapshotStore:
    return HealthSnapshotStore()


@pytest.fixture
def buffer() -> RingBuffer:
    return RingBuffer(capacity=4)


@pytest.fixture
def ledger(tmp_path: Path) -> MockLedger:
    led = MockLedger(tmp_path / "ledger.db")
    yield led
    led.close()
