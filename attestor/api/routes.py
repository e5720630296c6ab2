"""HTTP routes — observation ingestion and read-only pipeline status.

Endpoints:
  POST /v1/observations                          — record a head / sampled-count observation
  GET  /api/status                               — pipeline, buffer and posting counters
  GET  /api/samples                              — current ring buffer contents
  GET  /api/batches/latest                       — last batch attestation (+ ledger entry)
  GET  /api/ledger/{namespace}/{commitment}      — blob lookup (mock ledger)
  GET  /api/ledger/{namespace}/height/{height}   — blobs at a height (mock ledger)
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from attestor.ledger.mock import MockLedger
from attestor.sampling.snapshot import IngestionError

logger = logging.getLogger(__name__)

ingest_router = APIRouter()
status_router = APIRouter()


class ObservationIn(BaseModel):
    head: int | None = Field(default=None, ge=0)
    sampled_count: int | None = Field(default=None, ge=0)
    at: int | None = Field(default=None, ge=0, description="unix seconds; defaults to receive time")


# ── Ingestion ────────────────────────────────────────────────────────────────


@ingest_router.post("/v1/observations")
def record_observation(body: ObservationIn, request: Request) -> dict[str, Any]:
    """Atomically update the health snapshot store."""
    pipeline = request.app.state.pipeline
    at = body.at if body.at is not None else int(time.time())
    try:
        snap = pipeline.store.record_observation(body.head, body.sampled_count, at)
    except IngestionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "accepted": True,
        "head": snap.head,
        "sampled_count": snap.sampled_count,
        "last_update": snap.last_update,
    }


# ── Status ───────────────────────────────────────────────────────────────────


@status_router.get("/status")
def pipeline_status(request: Request) -> dict[str, Any]:
    return request.app.state.pipeline.status()


@status_router.get("/samples")
def list_samples(request: Request, limit: int = 100) -> list[dict[str, Any]]:
    samples = request.app.state.pipeline.buffer.snapshot()
    return [s.to_dict() for s in samples[-limit:]] if limit > 0 else []


@status_router.get("/batches/latest")
def latest_batch(request: Request) -> dict[str, Any]:
    pipeline = request.app.state.pipeline
    attestation = pipeline.last_attestation
    if attestation is None:
        raise HTTPException(status_code=404, detail="No batch generated yet")
    entry = pipeline.last_batch_entry
    return {
        "attestation": attestation.to_payload(),
        "ledger_entry": entry.to_dict() if entry else None,
    }


def _mock_ledger(request: Request) -> MockLedger:
    ledger = request.app.state.pipeline.ledger
    if not isinstance(ledger, MockLedger):
        raise HTTPException(status_code=501, detail="Ledger lookups are only served in mock mode")
    return ledger


def _namespace(namespace: str) -> bytes:
    try:
        return bytes.fromhex(namespace)
    except ValueError:
        raise HTTPException(status_code=400, detail="namespace must be hex")


@status_router.get("/ledger/{namespace}/height/{height}")
def ledger_at_height(namespace: str, height: int, request: Request) -> list[dict[str, Any]]:
    blobs = _mock_ledger(request).get_at(_namespace(namespace), height)
    return [json.loads(b) for b in blobs]


@status_router.get("/ledger/{namespace}/{commitment}")
def ledger_blob(namespace: str, commitment: str, request: Request) -> dict[str, Any]:
    data = _mock_ledger(request).get(_namespace(namespace), commitment)
    if data is None:
        raise HTTPException(status_code=404, detail="Commitment not found")
    return json.loads(data)
