"""Ledger poster — two independent streams of payloads.

Layer 1: every sample, tagged type=sample (best effort, at-least-once).
Layer 2: one batch attestation per window, tagged type=batch_attestation,
         with an optional proof and a signature over the batch.

Submissions retry with exponential backoff (base * 2^attempt, capped). When
the retry budget is spent a PostingError is raised to the caller, which logs
and alerts; the timers are never blocked on it.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from attestor.batching.batch import Batch
from attestor.ledger.models import LedgerClient, LedgerEntry, LedgerError
from attestor.proofs.prover import ProofArtifact
from attestor.sampling.models import Sample
from attestor.signing import canonical_json

logger = logging.getLogger(__name__)

SAMPLE_TYPE = "sample"
BATCH_TYPE = "batch_attestation"

PROOF_PROVED = "proved"
PROOF_FAILED = "failed"
PROOF_DISABLED = "disabled"


class PostingError(Exception):
    """Raised when a payload could not be posted within the retry budget."""

    def __init__(self, payload_type: str, attempts: int, last_error: BaseException) -> None:
        self.payload_type = payload_type
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"posting {payload_type} failed after {attempts} attempts: {last_error}")


@dataclass(frozen=True)
class BatchAttestation:
    """Layer 2 payload: a batch, its optional proof and the attestor's signature."""

    batch: Batch
    signature: str
    public_key: str
    proof: ProofArtifact | None = None
    proof_status: str = PROOF_DISABLED

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": BATCH_TYPE,
            "batch": self.batch.to_dict(),
            "proof": self.proof.to_dict() if self.proof else None,
            "proof_status": self.proof_status,
            "signature": self.signature,
            "public_key": self.public_key,
        }


def sample_payload(sample: Sample) -> dict[str, Any]:
    return {"type": SAMPLE_TYPE, "sample": sample.to_dict()}


class Poster:
    """Submits sample and batch payloads to a ledger client with retries.

    ``stop()`` wakes any retry backoff and makes in-progress submissions give
    up before their next attempt, so shutdown is not held by the retry budget.
    """

    def __init__(
        self,
        client: LedgerClient,
        namespace: bytes,
        retry_attempts: int = 4,
        backoff_secs: float = 1.0,
        backoff_max_secs: float = 30.0,
        sleep: Callable[[float], object] | None = None,
        max_tracked_batches: int = 64,
    ) -> None:
        self.client = client
        self.namespace = namespace
        self.retry_attempts = retry_attempts
        self.backoff_secs = backoff_secs
        self.backoff_max_secs = backoff_max_secs
        self.max_tracked_batches = max_tracked_batches
        self._stopped = threading.Event()
        self._sleep = sleep or self._stopped.wait
        self._lock = threading.Lock()
        # bounded to the most recent max_tracked_batches windows
        self._posted_batches: OrderedDict[tuple[int, int, str], LedgerEntry] = OrderedDict()
        self.samples_posted = 0
        self.batches_posted = 0
        self.failures = 0

    @classmethod
    def from_settings(cls, client: LedgerClient, cfg) -> "Poster":
        return cls(
            client,
            namespace=cfg.namespace_bytes,
            retry_attempts=cfg.post_retry_attempts,
            backoff_secs=cfg.post_backoff_secs,
            backoff_max_secs=cfg.post_backoff_max_secs,
        )

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based)."""
        return min(self.backoff_secs * (2 ** attempt), self.backoff_max_secs)

    def _submit(self, payload_type: str, data: bytes) -> LedgerEntry:
        attempts = self.retry_attempts + 1
        attempt = 0
        while True:
            if self.stopped:
                last_error: BaseException = LedgerError("poster stopped")
                break
            try:
                return self.client.submit(self.namespace, data)
            except Exception as e:
                last_error = e
            attempt += 1
            if attempt >= attempts:
                break
            delay = self.backoff_delay(attempt - 1)
            logger.warning(
                "Posting %s failed (attempt %d/%d): %s — retrying in %.1fs",
                payload_type, attempt, attempts, last_error, delay,
            )
            self._sleep(delay)

        with self._lock:
            self.failures += 1
        raise PostingError(payload_type, attempt, last_error) from last_error

    def post_sample(self, sample: Sample) -> LedgerEntry:
        entry = self._submit(SAMPLE_TYPE, canonical_json(sample_payload(sample)))
        with self._lock:
            self.samples_posted += 1
        logger.debug("Sample %d posted at height %d", sample.timestamp, entry.height)
        return entry

    def post_batch(self, attestation: BatchAttestation) -> LedgerEntry:
        """Post a batch attestation once per (window, bitmap_hash)."""
        key = attestation.batch.dedup_key
        with self._lock:
            existing = self._posted_batches.get(key)
        if existing is not None:
            logger.info("Batch for window %d-%d already posted, skipping", key[0], key[1])
            return existing

        entry = self._submit(BATCH_TYPE, canonical_json(attestation.to_payload()))
        with self._lock:
            self._posted_batches[key] = entry
            while len(self._posted_batches) > self.max_tracked_batches:
                self._posted_batches.popitem(last=False)
            self.batches_posted += 1
        logger.info(
            "Batch attestation posted: window %d-%d height=%d commitment=%s… proof=%s",
            key[0], key[1], entry.height, entry.commitment[:16], attestation.proof_status,
        )
        return entry

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "mode": self.client.mode,
                "namespace": self.namespace.hex(),
                "samples_posted": self.samples_posted,
                "batches_posted": self.batches_posted,
                "failures": self.failures,
            }
