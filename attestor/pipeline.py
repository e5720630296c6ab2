"""Attestation pipeline — two independent timers plus per-batch background work.

Sampler timer (tick_secs): evaluate + append inline, then spawn tasks that
persist samples.json and post the sample to the ledger.

Batch timer (window_secs = k * tick_secs): build the window digest inline,
then spawn one task per batch that writes the batch files, proves, signs and
posts. Proving and posting run in a thread pool and never delay a tick.

Lifecycle:
    pipeline = AttestationPipeline(settings)
    await pipeline.start()
    ...
    await pipeline.stop()
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from attestor.batching.batch import Batch
from attestor.batching.generator import BatchGenerator
from attestor.config import Settings
from attestor.ledger import build_ledger
from attestor.ledger.models import LedgerClient, LedgerEntry
from attestor.ledger.poster import (
    PROOF_DISABLED,
    PROOF_FAILED,
    PROOF_PROVED,
    BatchAttestation,
    Poster,
    PostingError,
)
from attestor.notifications import OperatorNotifier
from attestor.proofs.prover import ProofArtifact, ProofGenerationError, Prover, build_prover
from attestor.report import print_batch_summary
from attestor.sampling.models import Sample
from attestor.sampling.ring_buffer import BufferInvariantViolation, RingBuffer
from attestor.sampling.sampler import LivenessSampler
from attestor.sampling.snapshot import HealthSnapshotStore
from attestor.signing import Signer, load_signing_key
from attestor.storage import ArtifactStore

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# Minimum wait for worker threads after the poster is stopped
_EXECUTOR_DRAIN_SECS = 1.0


class AttestationPipeline:
    """Owns the shared state and both timers."""

    def __init__(
        self,
        cfg: Settings,
        ledger: LedgerClient | None = None,
        prover: Prover | None = _UNSET,
        signer: Signer | None = None,
        notifier: OperatorNotifier | None = None,
        clock: Callable[[], float] = time.time,
        show_summaries: bool = True,
    ) -> None:
        self.cfg = cfg
        self.k = cfg.window_samples
        self.store = HealthSnapshotStore(clock=clock, max_clock_skew_secs=cfg.max_clock_skew_secs)
        self.buffer = RingBuffer(cfg.buffer_capacity)
        self.sampler = LivenessSampler.from_settings(self.store, self.buffer, cfg)
        self.generator = BatchGenerator.from_settings(self.buffer, cfg)
        self.artifacts = ArtifactStore(cfg.data_dir)
        self.ledger = ledger if ledger is not None else build_ledger(cfg)
        self.poster = Poster.from_settings(self.ledger, cfg)
        self.prover = build_prover(cfg) if prover is _UNSET else prover
        self.signer = signer or Signer(load_signing_key(cfg.signing_key_hex, "batch signing"))
        self.notifier = notifier or OperatorNotifier(cfg.alert_webhook_url)
        self.show_summaries = show_summaries
        self._clock = clock

        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="attestor")
        self._timers: list[asyncio.Task[None]] = []
        self._inflight: set[asyncio.Task[Any]] = set()
        self._running = False

        self.last_attestation: BatchAttestation | None = None
        self.last_batch_entry: LedgerEntry | None = None
        self.aborted_ticks = 0
        self.posting_errors = 0

    @property
    def running(self) -> bool:
        return self._running

    def now(self) -> int:
        return int(self._clock())

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._timers = [
            asyncio.create_task(self._sample_loop(), name="attestor-sampler"),
            asyncio.create_task(self._batch_loop(), name="attestor-batcher"),
        ]
        logger.info(
            "Pipeline started: tick=%ds window=%ds (k=%d) capacity=%d poster=%s proofs=%s",
            self.cfg.tick_secs, self.cfg.window_secs, self.k, self.buffer.capacity,
            self.ledger.mode, self.prover.scheme if self.prover else "disabled",
        )

    async def stop(self, grace_secs: float | None = None) -> None:
        """Stop the timers, give in-flight work a grace period, then cancel it."""
        grace = self.cfg.shutdown_grace_secs if grace_secs is None else grace_secs
        loop = asyncio.get_running_loop()
        deadline = loop.time() + grace
        self._running = False
        for task in self._timers:
            task.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

        pending = set(self._inflight)
        if pending:
            logger.info("Waiting up to %.1fs for %d in-flight tasks", grace, len(pending))
            _, still_pending = await asyncio.wait(pending, timeout=max(deadline - loop.time(), 0))
            for task in still_pending:
                task.cancel()
            if still_pending:
                logger.warning("Cancelled %d in-flight tasks at shutdown", len(still_pending))
                await asyncio.gather(*still_pending, return_exceptions=True)

        # Cancelling a task does not stop its executor thread; the poster must be told
        self.poster.stop()
        drained = loop.run_in_executor(
            None, functools.partial(self._executor.shutdown, wait=True, cancel_futures=True),
        )
        try:
            await asyncio.wait_for(
                asyncio.shield(drained),
                timeout=max(deadline - loop.time(), _EXECUTOR_DRAIN_SECS),
            )
        except asyncio.TimeoutError:
            logger.warning("Worker threads still busy after shutdown grace, leaving ledger open")
            return
        self.ledger.close()
        logger.info("Pipeline stopped")

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight background task (used by tests and shutdown)."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ── Timers ───────────────────────────────────────────────────────────

    async def _sample_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while self._running:
            try:
                await self.sample_tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Sampler tick error")
            next_at += self.cfg.tick_secs
            await asyncio.sleep(max(next_at - loop.time(), 0))

    async def _batch_loop(self) -> None:
        # First batch fires one full window after start
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.cfg.window_secs
        while self._running:
            await asyncio.sleep(max(next_at - loop.time(), 0))
            if not self._running:
                break
            try:
                await self.batch_tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Batch tick error")
            next_at += self.cfg.window_secs

    # ── Ticks ────────────────────────────────────────────────────────────

    async def sample_tick(self, now: int | None = None) -> Sample | None:
        """One sampler tick. Returns None if the tick was aborted."""
        try:
            sample = self.sampler.tick(self.now() if now is None else now)
        except BufferInvariantViolation as e:
            self.aborted_ticks += 1
            logger.exception("Sampler tick aborted")
            self._spawn(self.notifier.notify_buffer_violation(str(e)), "alert-buffer")
            return None

        self._spawn(self._persist_samples(), f"persist-samples-{sample.timestamp}")
        if self.cfg.post_every_sample:
            self._spawn(self._post_sample(sample), f"post-sample-{sample.timestamp}")
        return sample

    async def batch_tick(self) -> asyncio.Task[BatchAttestation] | None:
        """One batch tick. Returns the background attestation task, if any."""
        result = self.generator.generate()
        if result is None:
            return None
        batch, bitmap = result
        return self._spawn(self._attest(batch, bitmap), f"attest-{batch.window.start}-{batch.window.end}")

    # ── Background work ──────────────────────────────────────────────────

    async def _persist_samples(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self.artifacts.save_samples, self.buffer.snapshot())
        except OSError:
            logger.exception("Failed to save samples")

    async def _post_sample(self, sample: Sample) -> LedgerEntry | None:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, self.poster.post_sample, sample)
        except PostingError as e:
            self.posting_errors += 1
            logger.error("Sample %d not posted: %s", sample.timestamp, e)
            await self.notifier.notify_posting_failed(e.payload_type, e.attempts, str(e.last_error))
            return None

    async def _prove(self, batch: Batch, bitmap: bytes) -> tuple[ProofArtifact | None, str]:
        if self.prover is None:
            return None, PROOF_DISABLED
        loop = asyncio.get_running_loop()
        try:
            artifact = await loop.run_in_executor(
                self._executor, self.prover.prove, bitmap, batch.n, batch.threshold, batch.bitmap_hash,
            )
        except ProofGenerationError as e:
            logger.warning("Proof generation failed, posting batch without proof: %s", e)
            await self.notifier.notify_proof_failed(batch.window.start, batch.window.end, str(e))
            return None, PROOF_FAILED
        except Exception as e:
            logger.exception("Prover crashed, posting batch without proof")
            await self.notifier.notify_proof_failed(batch.window.start, batch.window.end, repr(e))
            return None, PROOF_FAILED
        try:
            await loop.run_in_executor(self._executor, self.artifacts.save_proof, artifact)
        except OSError:
            logger.exception("Failed to save proof")
        return artifact, PROOF_PROVED

    async def _attest(self, batch: Batch, bitmap: bytes) -> BatchAttestation:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self.artifacts.save_batch, batch, bitmap)
        except OSError:
            logger.exception("Failed to save batch files")

        proof, proof_status = await self._prove(batch, bitmap)
        if not batch.meets_threshold:
            await self.notifier.notify_threshold_missed(batch.good, batch.n, batch.threshold)

        attestation = BatchAttestation(
            batch=batch,
            signature=self.signer.sign(batch.to_dict()),
            public_key=self.signer.public_key_hex,
            proof=proof,
            proof_status=proof_status,
        )
        self.last_attestation = attestation
        if self.show_summaries:
            print_batch_summary(batch, self.cfg.namespace, proof_status)

        try:
            self.last_batch_entry = await loop.run_in_executor(
                self._executor, self.poster.post_batch, attestation,
            )
        except PostingError as e:
            self.posting_errors += 1
            logger.error("Batch attestation not posted: %s", e)
            await self.notifier.notify_posting_failed(e.payload_type, e.attempts, str(e.last_error))
        return attestation

    # ── Introspection ────────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        snap = self.store.read()
        latest = self.buffer.latest()
        return {
            "running": self._running,
            "schedule": {
                "tick_secs": self.cfg.tick_secs,
                "window_secs": self.cfg.window_secs,
                "window_samples": self.k,
            },
            "snapshot": {
                "head": snap.head,
                "sampled_count": snap.sampled_count,
                "last_update": snap.last_update,
            },
            "buffer": {"length": len(self.buffer), "capacity": self.buffer.capacity},
            "latest_sample": latest.to_dict() if latest else None,
            "ticks": self.sampler.ticks,
            "aborted_ticks": self.aborted_ticks,
            "batches_skipped": self.generator.skipped,
            "posting": self.poster.stats(),
            "posting_errors": self.posting_errors,
            "proofs": self.prover.scheme if self.prover else "disabled",
            "in_flight": len(self._inflight),
            "alerts": self.notifier.status(),
        }
