"""Batch generator — summarizes the most recent window of the ring buffer."""

from __future__ import annotations

import logging
from fractions import Fraction

from attestor.batching.batch import Batch, build_batch
from attestor.sampling.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)


class BatchGenerator:
    """Builds one Batch per window tick from a buffer snapshot.

    The window is the last ``window_samples`` entries of the snapshot. With
    ``partial_batches`` off, a snapshot shorter than that is skipped rather
    than reported as a full window.
    """

    def __init__(
        self,
        buffer: RingBuffer,
        window_samples: int,
        threshold_fraction: float = 0.95,
        salt: bytes = b"",
        partial_batches: bool = False,
    ) -> None:
        if window_samples <= 0:
            raise ValueError("window_samples must be > 0")
        if buffer.capacity < window_samples:
            raise ValueError(
                f"buffer capacity {buffer.capacity} cannot hold a window of {window_samples}"
            )
        self.buffer = buffer
        self.window_samples = window_samples
        self.threshold_fraction = Fraction(str(threshold_fraction))
        self.salt = salt
        self.partial_batches = partial_batches
        self.last_batch: Batch | None = None
        self.last_bitmap: bytes = b""
        self.skipped = 0

    @classmethod
    def from_settings(cls, buffer: RingBuffer, cfg) -> "BatchGenerator":
        return cls(
            buffer,
            window_samples=cfg.window_samples,
            threshold_fraction=cfg.threshold_fraction,
            salt=cfg.salt_bytes,
            partial_batches=cfg.partial_batches,
        )

    def generate(self) -> tuple[Batch, bytes] | None:
        """Return (batch, bitmap) for the current window, or None if skipped."""
        snapshot = self.buffer.snapshot()
        if not snapshot:
            self.skipped += 1
            logger.warning("No samples in ring buffer yet, skipping batch")
            return None

        if len(snapshot) < self.window_samples and not self.partial_batches:
            self.skipped += 1
            logger.info(
                "Window incomplete (%d/%d samples), skipping batch",
                len(snapshot), self.window_samples,
            )
            return None

        window = snapshot[-self.window_samples:]
        batch, bitmap = build_batch(window, self.threshold_fraction, self.salt)
        self.last_batch = batch
        self.last_bitmap = bitmap

        if len(window) < self.window_samples:
            logger.info("Partial batch over %d/%d samples", len(window), self.window_samples)
        logger.info(
            "Batch generated: n=%d good=%d threshold=%d uptime=%.2f%%",
            batch.n, batch.good, batch.threshold, batch.uptime_percent,
        )
        if not batch.meets_threshold:
            logger.warning(
                "Uptime threshold NOT MET (need %d of %d, got %d)",
                batch.threshold, batch.n, batch.good,
            )
        return batch, bitmap
