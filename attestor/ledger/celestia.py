"""httpx-based JSON-RPC client for a Celestia light/bridge node.

Uses blob.Submit to post, then blob.GetAll at the returned height to learn the
commitment the node assigned. Namespaces are version-0: one version byte,
18 zero bytes, then the 10-byte user id left-padded with zeros.
"""

from __future__ import annotations

import base64
import itertools
import logging
import time
from typing import Any

import httpx

from attestor.ledger.models import LedgerClient, LedgerEntry, LedgerError

logger = logging.getLogger(__name__)

NAMESPACE_VERSION_ZERO = 0
NAMESPACE_ID_SIZE = 28
NAMESPACE_USER_BYTES = 10


def v0_namespace(user_id: bytes) -> bytes:
    """29-byte version-0 namespace for a user id of at most 10 bytes."""
    if not 0 < len(user_id) <= NAMESPACE_USER_BYTES:
        raise ValueError(f"namespace id must be 1..{NAMESPACE_USER_BYTES} bytes, got {len(user_id)}")
    return bytes([NAMESPACE_VERSION_ZERO]) + user_id.rjust(NAMESPACE_ID_SIZE, b"\x00")


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class CelestiaLedger(LedgerClient):
    """Synchronous JSON-RPC client; callers run it off the event loop."""

    mode = "real"

    def __init__(
        self,
        base_url: str,
        auth_token: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = auth_token
        self._ids = itertools.count(1)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @property
    def _headers(self) -> dict[str, str]:
        h = {"Content-Type": "application/json"}
        if self._token:
            h["Authorization"] = f"Bearer {self._token}"
        return h

    def _call(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._client.post(self._base_url, headers=self._headers, json=body)
        except httpx.ConnectError as e:
            raise LedgerError(f"ledger node unreachable: {e}") from e
        except httpx.TimeoutException as e:
            raise LedgerError(f"ledger request timed out: {method}") from e

        if resp.status_code >= 400:
            raise LedgerError(f"{method} failed with HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise LedgerError(f"{method} returned a non-JSON body") from e
        if payload.get("error"):
            err = payload["error"]
            raise LedgerError(f"{method} error {err.get('code')}: {err.get('message')}")
        return payload.get("result")

    # ── LedgerClient ─────────────────────────────────────────────────────

    def submit(self, namespace: bytes, data: bytes) -> LedgerEntry:
        ns = v0_namespace(namespace)
        blob = {"namespace": _b64(ns), "data": _b64(data), "share_version": 0}
        height = self._call("blob.Submit", [[blob], {}])
        if not isinstance(height, int):
            raise LedgerError(f"blob.Submit returned unexpected result: {height!r}")

        commitment = self._find_commitment(ns, height, data)
        logger.info("Blob posted at height %d (commitment %s…)", height, commitment[:16])
        return LedgerEntry(commitment, height, namespace.hex(), int(time.time()))

    def _find_commitment(self, ns: bytes, height: int, data: bytes) -> str:
        blobs = self._call("blob.GetAll", [height, [_b64(ns)]]) or []
        for blob in blobs:
            if base64.b64decode(blob.get("data", "")) == data:
                return base64.b64decode(blob["commitment"]).hex()
        raise LedgerError(f"submitted blob not found at height {height}")

    def get(self, namespace: bytes, commitment: str) -> bytes | None:
        raise LedgerError("lookup by commitment alone needs a height on Celestia; use get_at")

    def get_at(self, namespace: bytes, height: int) -> list[bytes]:
        ns = v0_namespace(namespace)
        blobs = self._call("blob.GetAll", [height, [_b64(ns)]]) or []
        return [base64.b64decode(b["data"]) for b in blobs]

    def get_blob(self, namespace: bytes, height: int, commitment: str) -> bytes | None:
        ns = v0_namespace(namespace)
        blob = self._call("blob.Get", [height, _b64(ns), _b64(bytes.fromhex(commitment))])
        return base64.b64decode(blob["data"]) if blob else None

    def close(self) -> None:
        self._client.close()
