"""Liveness sampler — turns the latest health snapshot into one ok/fail bit per tick.

Predicate, in priority order:
  1. stale       — no update within max_staleness_secs
  2. no_head     — store has never seen a head value
  3. first_sample — first head observed by this sampler
  4. advanced    — head moved by at least min_increment since the previous tick
  5. fresh       — head did not move but the last update is within the grace window
  6. stuck       — otherwise
Passing outcomes (3-5) are downgraded to headers_not_advanced when the
sampled-count cross-check is enabled and the counter did not move.
"""

from __future__ import annotations

import logging
import time

from attestor.sampling.models import HealthSnapshot, ReasonCode, Sample
from attestor.sampling.ring_buffer import RingBuffer
from attestor.sampling.snapshot import HealthSnapshotStore

logger = logging.getLogger(__name__)


class LivenessSampler:
    """Evaluates the three-tier liveness predicate and feeds the ring buffer.

    Carries the previous head / sampled_count across ticks. Both are replaced
    after every tick regardless of outcome, so advancement is always measured
    against the immediately preceding tick.
    """

    def __init__(
        self,
        store: HealthSnapshotStore,
        buffer: RingBuffer,
        max_staleness_secs: int = 120,
        grace_period_secs: int = 45,
        min_increment: int = 1,
        require_sampled_count_advance: bool = True,
    ) -> None:
        if grace_period_secs >= max_staleness_secs:
            raise ValueError("grace_period_secs must be < max_staleness_secs")
        self.store = store
        self.buffer = buffer
        self.max_staleness_secs = max_staleness_secs
        self.grace_period_secs = grace_period_secs
        self.min_increment = min_increment
        self.require_sampled_count_advance = require_sampled_count_advance
        self.prev_head: int | None = None
        self.prev_sampled_count: int | None = None
        self.ticks = 0

    @classmethod
    def from_settings(cls, store: HealthSnapshotStore, buffer: RingBuffer, cfg) -> "LivenessSampler":
        return cls(
            store,
            buffer,
            max_staleness_secs=cfg.max_staleness_secs,
            grace_period_secs=cfg.grace_period_secs,
            min_increment=cfg.min_increment,
            require_sampled_count_advance=cfg.require_sampled_count_advance,
        )

    def evaluate(self, snap: HealthSnapshot, now: int) -> Sample:
        """Apply the predicate to *snap* at time *now* without touching state."""
        age = snap.age(now)

        def emit(ok: bool, code: ReasonCode, reason: str = "") -> Sample:
            return Sample(
                timestamp=now,
                head=snap.head,
                sampled_count=snap.sampled_count,
                ok=ok,
                code=code,
                reason=reason or code.value,
            )

        if age is None or age > self.max_staleness_secs:
            return emit(False, ReasonCode.STALE)

        if snap.head is None:
            return emit(False, ReasonCode.NO_HEAD)

        if self.prev_head is None:
            passed = emit(True, ReasonCode.FIRST_SAMPLE)
        else:
            advanced = snap.head - self.prev_head
            if advanced >= self.min_increment:
                passed = emit(True, ReasonCode.ADVANCED, f"advanced(+{advanced})")
            elif age <= self.grace_period_secs:
                passed = emit(True, ReasonCode.FRESH, f"fresh(age={age}s)")
            else:
                return emit(False, ReasonCode.STUCK)

        if self.require_sampled_count_advance and not self._sampled_count_advanced(snap):
            return emit(False, ReasonCode.HEADERS_NOT_ADVANCED)
        return passed

    def _sampled_count_advanced(self, snap: HealthSnapshot) -> bool:
        if snap.sampled_count is None:
            return False
        if self.prev_sampled_count is None:
            return True
        return snap.sampled_count - self.prev_sampled_count >= 1

    def tick(self, now: int | None = None) -> Sample:
        """Run one sampling tick: read, evaluate, carry state, append.

        Raises BufferInvariantViolation if the buffer rejects the sample.
        """
        if now is None:
            now = int(time.time())
        snap = self.store.read()
        sample = self.evaluate(snap, now)

        self.prev_head = snap.head
        self.prev_sampled_count = snap.sampled_count
        self.ticks += 1

        self.buffer.append(sample)

        if sample.ok:
            logger.info(
                "Sample OK: head=%s (%s) sampled_count=%s | buffer %d/%d",
                sample.head, sample.reason, sample.sampled_count,
                len(self.buffer), self.buffer.capacity,
            )
        else:
            logger.warning(
                "Sample FAILED: %s | head=%s sampled_count=%s",
                sample.reason, sample.head, sample.sampled_count,
            )
        return sample
