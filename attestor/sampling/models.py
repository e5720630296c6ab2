"""Sampling data models — snapshots of node health and emitted samples."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ReasonCode(str, Enum):
    ADVANCED = "advanced"
    FRESH = "fresh"
    FIRST_SAMPLE = "first_sample"
    STALE = "stale"
    STUCK = "stuck"
    NO_HEAD = "no_head"
    HEADERS_NOT_ADVANCED = "headers_not_advanced"


@dataclass(frozen=True)
class HealthSnapshot:
    """Point-in-time copy of the health snapshot store."""

    head: int | None = None
    sampled_count: int | None = None
    last_update: int | None = None  # unix seconds

    def age(self, now: int) -> int | None:
        if self.last_update is None:
            return None
        return max(now - self.last_update, 0)


@dataclass(frozen=True)
class Sample:
    """Outcome of one liveness evaluation at one tick."""

    timestamp: int
    head: int | None
    sampled_count: int | None
    ok: bool
    code: ReasonCode
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "head": self.head,
            "sampled_count": self.sampled_count,
            "ok": self.ok,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Sample":
        reason = str(data["reason"])
        tag = reason.split("(", 1)[0]
        return cls(
            timestamp=int(data["timestamp"]),
            head=data.get("head"),
            sampled_count=data.get("sampled_count"),
            ok=bool(data["ok"]),
            code=ReasonCode(tag),
            reason=reason,
        )
