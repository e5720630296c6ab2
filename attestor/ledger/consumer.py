"""Consumer-side helpers — decode ledger payloads and count uptime once per window."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from attestor.batching.batch import Batch
from attestor.ledger.poster import BATCH_TYPE, SAMPLE_TYPE
from attestor.sampling.models import Sample
from attestor.signing import Signer


def decode_payload(raw: bytes | str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    return json.loads(raw)


def verify_attestation(payload: dict[str, Any]) -> bool:
    """Check the attestor signature over the batch record."""
    if payload.get("type") != BATCH_TYPE:
        return False
    return Signer.verify(payload["batch"], payload.get("signature", ""), payload.get("public_key", ""))


def dedupe_attestations(raws: Iterable[bytes | str | dict[str, Any]]) -> list[Batch]:
    """Unique batches keyed by (window, bitmap_hash), in first-seen order."""
    seen: dict[tuple[int, int, str], Batch] = {}
    for raw in raws:
        payload = decode_payload(raw)
        if payload.get("type") != BATCH_TYPE:
            continue
        batch = Batch.from_dict(payload["batch"])
        seen.setdefault(batch.dedup_key, batch)
    return list(seen.values())


def samples_in_order(raws: Iterable[bytes | str | dict[str, Any]]) -> list[Sample]:
    """Layer 1 samples may arrive out of order; rebuild order from timestamps."""
    by_ts: dict[int, Sample] = {}
    for raw in raws:
        payload = decode_payload(raw)
        if payload.get("type") != SAMPLE_TYPE:
            continue
        sample = Sample.from_dict(payload["sample"])
        by_ts.setdefault(sample.timestamp, sample)
    return [by_ts[ts] for ts in sorted(by_ts)]


def uptime_summary(batches: Iterable[Batch]) -> dict[str, Any]:
    batches = list(batches)
    n = sum(b.n for b in batches)
    good = sum(b.good for b in batches)
    return {
        "windows": len(batches),
        "windows_meeting_threshold": sum(1 for b in batches if b.meets_threshold),
        "samples": n,
        "good": good,
        "uptime_percent": round(good / n * 100.0, 2) if n else 0.0,
    }
