"""Sampling subsystem — snapshot store, liveness predicate, ring buffer."""

from .models import HealthSnapshot, ReasonCode, Sample
from .ring_buffer import BufferInvariantViolation, RingBuffer
from .sampler import LivenessSampler
from .snapshot import HealthSnapshotStore, IngestionError
