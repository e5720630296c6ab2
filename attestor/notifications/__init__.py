"""Operator notifications — a single webhook (Slack- or Discord-compatible).

Fires on:
- Ledger posting giving up after its retry budget
- Ring buffer invariant violations (aborted ticks)
- Proof generation failures
- Windows that miss their uptime threshold

All webhook calls are fire-and-forget via httpx async; a failed delivery is
logged and never propagates into the pipeline.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class NotifyLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


_EMOJI = {
    NotifyLevel.INFO: "ℹ️",
    NotifyLevel.WARNING: "⚠️",
    NotifyLevel.CRITICAL: "🔴",
}


class OperatorNotifier:
    """Posts alert text to the configured webhook."""

    def __init__(self, webhook_url: str = "", timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.sent = 0

    @property
    def is_enabled(self) -> bool:
        return bool(self.webhook_url)

    def status(self) -> dict[str, Any]:
        return {"enabled": self.is_enabled, "sent": self.sent}

    # -- High-level notification methods ------------------------------------

    async def notify_posting_failed(self, payload_type: str, attempts: int, error: str) -> None:
        text = (
            f"*Ledger posting failed*\n"
            f"Payload: `{payload_type}` after {attempts} attempts\n"
            f"Error: {error[:500]}\n"
        )
        await self._send(text, NotifyLevel.CRITICAL)

    async def notify_buffer_violation(self, error: str) -> None:
        text = f"*Ring buffer invariant violated* — tick aborted\n{error[:500]}\n"
        await self._send(text, NotifyLevel.CRITICAL)

    async def notify_proof_failed(self, window_start: int, window_end: int, error: str) -> None:
        text = (
            f"*Proof generation failed* for window {window_start}-{window_end}\n"
            f"Batch posted without proof. Reason: {error[:300]}\n"
        )
        await self._send(text, NotifyLevel.WARNING)

    async def notify_threshold_missed(self, good: int, n: int, threshold: int) -> None:
        text = f"*Uptime threshold missed*: {good}/{n} ok samples (need {threshold})\n"
        await self._send(text, NotifyLevel.WARNING)

    # -- Low-level dispatch -------------------------------------------------

    async def _send(self, text: str, level: NotifyLevel) -> None:
        if not self.is_enabled:
            logger.debug("Operator alert (no webhook): %s", text.strip())
            return
        body = f"{_EMOJI[level]} {text}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                # "text" for Slack, "content" for Discord
                resp = await client.post(self.webhook_url, json={"text": body, "content": body})
            if resp.status_code not in (200, 204):
                logger.warning("Alert webhook returned %d: %s", resp.status_code, resp.text[:200])
                return
            self.sent += 1
        except Exception as exc:
            logger.warning("Alert delivery failed: %s", exc)
