"""Health snapshot store — latest head / sampled-count observed from the node.

Written by the ingestion path, read by the sampler. All three fields are
updated and read under a single lock so a reader never sees a half-applied
observation.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from attestor.sampling.models import HealthSnapshot

logger = logging.getLogger(__name__)


class IngestionError(ValueError):
    """Raised when an observation is malformed; the store is left unchanged."""


def _check_counter(name: str, value: object) -> int | None:
    if value is None:
        return None
    # bool is an int subclass; a True/False head is always a decoding bug
    if isinstance(value, bool) or not isinstance(value, int):
        raise IngestionError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise IngestionError(f"{name} must be >= 0, got {value}")
    return value


class HealthSnapshotStore:
    """Thread-safe holder for the most recent node observation.

    Observations dated more than ``max_clock_skew_secs`` past ``clock()`` are
    rejected: the freshness clock never moves backwards, so a single
    future-dated report would otherwise keep the node looking fresh forever.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_clock_skew_secs: int = 30,
    ) -> None:
        self._clock = clock
        self.max_clock_skew_secs = max_clock_skew_secs
        self._lock = threading.Lock()
        self._head: int | None = None
        self._sampled_count: int | None = None
        self._last_update: int | None = None
        self.observations = 0
        self.rejected = 0

    def record_observation(
        self,
        head: int | None,
        sampled_count: int | None,
        at: int,
    ) -> HealthSnapshot:
        """Apply one observation atomically and return the resulting snapshot.

        A head report refreshes the freshness clock; a sampled-count-only report
        does not. The clock never moves backwards.
        """
        try:
            head = _check_counter("head", head)
            sampled_count = _check_counter("sampled_count", sampled_count)
            if head is None and sampled_count is None:
                raise IngestionError("observation carries neither head nor sampled_count")
            if isinstance(at, bool) or not isinstance(at, int) or at < 0:
                raise IngestionError(f"observation time must be a non-negative integer, got {at!r}")
            latest_allowed = int(self._clock()) + self.max_clock_skew_secs
            if at > latest_allowed:
                raise IngestionError(
                    f"observation time {at} is more than {self.max_clock_skew_secs}s in the future"
                )
        except IngestionError as e:
            with self._lock:
                self.rejected += 1
            logger.warning("Dropped observation: %s", e)
            raise

        with self._lock:
            if head is not None:
                self._head = head
                if self._last_update is None or at > self._last_update:
                    self._last_update = at
            if sampled_count is not None:
                self._sampled_count = sampled_count
            self.observations += 1
            snap = HealthSnapshot(self._head, self._sampled_count, self._last_update)

        logger.debug("Observation recorded: head=%s sampled_count=%s at=%s", head, sampled_count, at)
        return snap

    def read(self) -> HealthSnapshot:
        with self._lock:
            return HealthSnapshot(self._head, self._sampled_count, self._last_update)
