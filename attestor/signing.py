"""Canonical JSON and ed25519 signing for attestation payloads."""

from __future__ import annotations

import json
import logging
from typing import Any

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

logger = logging.getLogger(__name__)


def canonical_json(payload: Any) -> bytes:
    """The only byte form that is ever hashed, signed or posted."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def load_signing_key(seed_hex: str, purpose: str = "signing") -> SigningKey:
    """Build a key from a hex seed, or generate an ephemeral one if empty."""
    if not seed_hex:
        logger.warning("No %s key configured — using an ephemeral ed25519 key", purpose)
        return SigningKey.generate()
    seed = bytes.fromhex(seed_hex)
    if len(seed) != 32:
        raise ValueError(f"{purpose} key must be 32 bytes (64 hex chars), got {len(seed)} bytes")
    return SigningKey(seed)


class Signer:
    """Signs canonical JSON payloads and verifies them against a public key."""

    def __init__(self, key: SigningKey) -> None:
        self._key = key
        self.verify_key: VerifyKey = key.verify_key

    @property
    def public_key_hex(self) -> str:
        return bytes(self.verify_key).hex()

    def sign(self, payload: Any) -> str:
        return self._key.sign(canonical_json(payload)).signature.hex()

    @staticmethod
    def verify(payload: Any, signature_hex: str, public_key_hex: str) -> bool:
        try:
            VerifyKey(bytes.fromhex(public_key_hex)).verify(
                canonical_json(payload), bytes.fromhex(signature_hex)
            )
        except (BadSignatureError, ValueError, TypeError):
            return False
        return True
