"""Ledger contract — entries returned by a data-availability layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class LedgerError(Exception):
    """Raised by a ledger client when a submission or lookup fails."""


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable handle for one appended blob."""

    commitment: str  # hex
    height: int
    namespace: str  # hex
    submitted_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "commitment": self.commitment,
            "height": self.height,
            "namespace": self.namespace,
            "submitted_at": self.submitted_at,
        }


class LedgerClient:
    """Append-only, content-addressed blob store."""

    mode: str = "base"

    def submit(self, namespace: bytes, data: bytes) -> LedgerEntry:
        raise NotImplementedError

    def get(self, namespace: bytes, commitment: str) -> bytes | None:
        raise NotImplementedError

    def get_at(self, namespace: bytes, height: int) -> list[bytes]:
        raise NotImplementedError

    def close(self) -> None:
        pass
