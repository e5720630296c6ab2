"""Batch commitments — bitmap encoding, blake3 digest, exact thresholds.

Everything here is a pure function of the ordered sample sequence and the
salt, so a batch can be recomputed bit-for-bit from stored data alone.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from fractions import Fraction
from typing import Any

from blake3 import blake3

from attestor.sampling.models import Sample

OK_BYTE = 0x01
FAIL_BYTE = 0x00


@dataclass(frozen=True)
class Window:
    start: int
    end: int

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Batch:
    """Statistical digest of one window of samples."""

    n: int
    good: int
    threshold: int
    bitmap_hash: str  # hex, 32 bytes
    window: Window

    @property
    def failed(self) -> int:
        return self.n - self.good

    @property
    def meets_threshold(self) -> bool:
        return self.good >= self.threshold

    @property
    def uptime_percent(self) -> float:
        return (self.good / self.n) * 100.0 if self.n else 0.0

    @property
    def dedup_key(self) -> tuple[int, int, str]:
        """Receivers deduplicate attestations on (window, bitmap_hash)."""
        return (self.window.start, self.window.end, self.bitmap_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "n": self.n,
            "good": self.good,
            "threshold": self.threshold,
            "bitmap_hash": self.bitmap_hash,
            "window": self.window.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Batch":
        w = data["window"]
        return cls(
            n=int(data["n"]),
            good=int(data["good"]),
            threshold=int(data["threshold"]),
            bitmap_hash=str(data["bitmap_hash"]),
            window=Window(start=int(w["start"]), end=int(w["end"])),
        )


def compute_threshold(n: int, fraction: float | str | Fraction) -> int:
    """ceil(fraction * n) in exact rational arithmetic.

    The fraction goes through its decimal string so 0.95 is exactly 19/20,
    not the nearest binary double.
    """
    if n < 0:
        raise ValueError(f"n must be >= 0, got {n}")
    f = fraction if isinstance(fraction, Fraction) else Fraction(str(fraction))
    if not 0 < f <= 1:
        raise ValueError(f"fraction must be in (0, 1], got {fraction}")
    product = f * n
    return -(-product.numerator // product.denominator)


def encode_bitmap(samples: Sequence[Sample]) -> bytes:
    return bytes(OK_BYTE if s.ok else FAIL_BYTE for s in samples)


def hash_bitmap(bitmap: bytes, salt: bytes = b"") -> str:
    """blake3-256 of ``bitmap || salt`` as lowercase hex."""
    return blake3(bitmap + salt).hexdigest()


def count_good(bitmap: bytes) -> int:
    return sum(1 for b in bitmap if b == OK_BYTE)


def build_batch(
    samples: Sequence[Sample],
    fraction: float | str | Fraction,
    salt: bytes = b"",
) -> tuple[Batch, bytes]:
    """Summarize an ordered, non-empty window of samples."""
    if not samples:
        raise ValueError("cannot build a batch from an empty window")
    bitmap = encode_bitmap(samples)
    n = len(bitmap)
    batch = Batch(
        n=n,
        good=count_good(bitmap),
        threshold=compute_threshold(n, fraction),
        bitmap_hash=hash_bitmap(bitmap, salt),
        window=Window(start=samples[0].timestamp, end=samples[-1].timestamp),
    )
    return batch, bitmap


def verify_batch(
    batch: Batch,
    bitmap: bytes,
    fraction: float | str | Fraction,
    salt: bytes = b"",
) -> bool:
    """Check a batch against its stored bitmap."""
    if any(b not in (OK_BYTE, FAIL_BYTE) for b in bitmap):
        return False
    return (
        batch.n == len(bitmap)
        and batch.good == count_good(bitmap)
        and batch.threshold == compute_threshold(len(bitmap), fraction)
        and batch.bitmap_hash == hash_bitmap(bitmap, salt)
    )
