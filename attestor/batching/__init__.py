"""Batching subsystem — window digests over the ring buffer."""

from .batch import (
    Batch,
    Window,
    build_batch,
    compute_threshold,
    encode_bitmap,
    hash_bitmap,
    verify_batch,
)
from .generator import BatchGenerator
