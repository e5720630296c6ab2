"""Fixed-capacity ring buffer of samples.

Appends evict the oldest entry once full. Readers get an immutable copy taken
under the lock, so a snapshot is always a consistent point-in-time view.
"""

from __future__ import annotations

import threading
from collections import deque

from attestor.sampling.models import Sample


class BufferInvariantViolation(RuntimeError):
    """Raised on a programming defect such as a timestamp regression."""


class RingBuffer:
    """Ordered FIFO of samples with overwrite-on-full."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._samples: deque[Sample] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.evicted = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def append(self, sample: Sample) -> None:
        with self._lock:
            if self._samples and sample.timestamp < self._samples[-1].timestamp:
                raise BufferInvariantViolation(
                    f"timestamp regression: {sample.timestamp} after {self._samples[-1].timestamp}"
                )
            if len(self._samples) == self._samples.maxlen:
                self.evicted += 1
            self._samples.append(sample)

    def snapshot(self) -> tuple[Sample, ...]:
        """Return an immutable ordered copy of the current contents."""
        with self._lock:
            return tuple(self._samples)

    def latest(self) -> Sample | None:
        with self._lock:
            return self._samples[-1] if self._samples else None
