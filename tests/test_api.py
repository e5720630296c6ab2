"""Tests for the FastAPI routes."""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from attestor.api.server import create_app
from attestor.pipeline import AttestationPipeline

NOW = 1_700_000_000


@pytest.fixture
def pipeline(cfg):
    p = AttestationPipeline(cfg, show_summaries=False)
    yield p
    p.ledger.close()


@pytest.fixture
def client(pipeline):
    app = create_app(pipeline=pipeline, start_pipeline=False)
    with TestClient(app) as c:
        yield c


def _run_window(p: AttestationPipeline) -> None:
    async def run():
        for i in range(p.k):
            p.store.record_observation(100 + i, 10 + i, at=NOW + 30 * i)
            await p.sample_tick(NOW + 30 * i)
        await p.drain()
        await (await p.batch_tick())

    asyncio.run(run())


class TestObservations:
    def test_record(self, client, pipeline):
        resp = client.post("/v1/observations", json={"head": 100, "sampled_count": 7, "at": NOW})
        assert resp.status_code == 200
        assert resp.json() == {"accepted": True, "head": 100, "sampled_count": 7, "last_update": NOW}
        assert pipeline.store.read().head == 100

    def test_defaults_to_receive_time(self, client, pipeline):
        resp = client.post("/v1/observations", json={"head": 5})
        assert resp.status_code == 200
        assert resp.json()["last_update"] > NOW

    def test_empty_observation_rejected(self, client, pipeline):
        resp = client.post("/v1/observations", json={})
        assert resp.status_code == 400
        assert pipeline.store.rejected == 1

    @pytest.mark.parametrize("body", [{"head": -1}, {"head": "abc"}, {"sampled_count": -3}])
    def test_malformed_body(self, client, body):
        assert client.post("/v1/observations", json=body).status_code == 422


class TestStatusRoutes:
    def test_status(self, client):
        resp = client.get("/api/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["running"] is False
        assert data["schedule"]["window_samples"] == 4
        assert data["buffer"]["length"] == 0

    def test_samples(self, client, pipeline):
        _run_window(pipeline)
        resp = client.get("/api/samples")
        assert resp.status_code == 200
        assert [s["timestamp"] for s in resp.json()] == [NOW + 30 * i for i in range(4)]
        assert len(client.get("/api/samples", params={"limit": 2}).json()) == 2
        assert client.get("/api/samples", params={"limit": 0}).json() == []

    def test_no_batch_yet(self, client):
        assert client.get("/api/batches/latest").status_code == 404

    def test_latest_batch(self, client, pipeline):
        _run_window(pipeline)
        resp = client.get("/api/batches/latest")
        assert resp.status_code == 200
        data = resp.json()
        assert data["attestation"]["batch"]["n"] == 4
        assert data["attestation"]["proof_status"] == "proved"
        assert data["ledger_entry"]["height"] >= 1


class TestLedgerRoutes:
    def test_lookup_by_commitment_and_height(self, client, pipeline):
        _run_window(pipeline)
        entry = pipeline.last_batch_entry
        resp = client.get(f"/api/ledger/{entry.namespace}/{entry.commitment}")
        assert resp.status_code == 200
        assert resp.json()["type"] == "batch_attestation"

        at_height = client.get(f"/api/ledger/{entry.namespace}/height/{entry.height}")
        assert at_height.status_code == 200
        assert [b["type"] for b in at_height.json()] == ["batch_attestation"]

    def test_unknown_commitment(self, client):
        assert client.get("/api/ledger/757074696d65/" + "00" * 32).status_code == 404

    def test_bad_namespace(self, client):
        assert client.get("/api/ledger/zz/abcd").status_code == 400
