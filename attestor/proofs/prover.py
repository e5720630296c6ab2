"""Threshold provers — bind a batch to the statement "sum(bitmap) >= threshold".

Two backends share one interface:
- MockProver: blake3 keyed MAC over the public inputs under a fixed domain key.
  Cheap and structural; anyone holding the code can forge it.
- SignedThresholdProver: the prover checks the statement against the private
  bitmap and signs the public inputs with an ed25519 key. Verifiers trust the
  prover's public key and learn nothing about the bitmap beyond its hash.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from blake3 import blake3
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from attestor.batching.batch import count_good, hash_bitmap
from attestor.signing import canonical_json, load_signing_key

logger = logging.getLogger(__name__)

_MOCK_DOMAIN_KEY = blake3(b"attestor/mock-threshold-proof/v1").digest()


class ProofGenerationError(Exception):
    """Raised when a proof cannot be produced for the given inputs."""


@dataclass(frozen=True)
class ProofArtifact:
    n: int
    threshold: int
    bitmap_hash: str
    proof: bytes
    scheme: str
    public_key: str = ""  # hex ed25519 key of a signing prover

    @property
    def public_inputs(self) -> dict[str, Any]:
        return {"n": self.n, "threshold": self.threshold, "bitmap_hash": self.bitmap_hash}

    def to_dict(self) -> dict[str, Any]:
        data = {
            "public_inputs": self.public_inputs,
            "proof": self.proof.hex(),
            "scheme": self.scheme,
        }
        if self.public_key:
            data["public_key"] = self.public_key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProofArtifact":
        pi = data["public_inputs"]
        return cls(
            n=int(pi["n"]),
            threshold=int(pi["threshold"]),
            bitmap_hash=str(pi["bitmap_hash"]),
            proof=bytes.fromhex(data["proof"]),
            scheme=str(data.get("scheme", "")),
            public_key=str(data.get("public_key", "")),
        )


class Prover:
    """Base class for threshold provers."""

    scheme: str = "base"
    public_key_hex: str = ""

    def __init__(self, salt: bytes = b"") -> None:
        self.salt = salt

    def prove(self, bitmap: bytes, n: int, threshold: int, bitmap_hash: str) -> ProofArtifact:
        self._check_statement(bitmap, n, threshold, bitmap_hash)
        public_inputs = {"n": n, "threshold": threshold, "bitmap_hash": bitmap_hash}
        proof = self._prove(canonical_json(public_inputs))
        logger.info("Proof generated (%s): n=%d threshold=%d", self.scheme, n, threshold)
        return ProofArtifact(
            n=n,
            threshold=threshold,
            bitmap_hash=bitmap_hash,
            proof=proof,
            scheme=self.scheme,
            public_key=self.public_key_hex,
        )

    def verify(self, artifact: ProofArtifact) -> bool:
        """Pure check; returns False for any tampering, never raises."""
        if artifact.scheme != self.scheme:
            return False
        if artifact.n < 0 or not 0 <= artifact.threshold <= artifact.n:
            return False
        try:
            return self._verify(canonical_json(artifact.public_inputs), artifact.proof)
        except (ValueError, TypeError):
            return False

    def _check_statement(self, bitmap: bytes, n: int, threshold: int, bitmap_hash: str) -> None:
        if len(bitmap) != n:
            raise ProofGenerationError(f"bitmap length {len(bitmap)} does not match n={n}")
        if hash_bitmap(bitmap, self.salt) != bitmap_hash:
            raise ProofGenerationError("bitmap does not hash to the committed bitmap_hash")
        good = count_good(bitmap)
        if good < threshold:
            raise ProofGenerationError(f"statement is false: good={good} < threshold={threshold}")

    def _prove(self, message: bytes) -> bytes:
        raise NotImplementedError

    def _verify(self, message: bytes, proof: bytes) -> bool:
        raise NotImplementedError


class MockProver(Prover):
    scheme = "mock-blake3"

    def _prove(self, message: bytes) -> bytes:
        return blake3(message, key=_MOCK_DOMAIN_KEY).digest()

    def _verify(self, message: bytes, proof: bytes) -> bool:
        return proof == self._prove(message)


class SignedThresholdProver(Prover):
    """Signs the public inputs. Built from a VerifyKey alone it can only verify."""

    scheme = "ed25519-attested"

    def __init__(
        self,
        key: SigningKey | None = None,
        salt: bytes = b"",
        verify_key: VerifyKey | None = None,
    ) -> None:
        super().__init__(salt)
        if key is None and verify_key is None:
            raise ValueError("a signing key or a verify key is required")
        self._key = key
        self.verify_key = key.verify_key if key is not None else verify_key
        self.public_key_hex = bytes(self.verify_key).hex()

    @classmethod
    def verifier(cls, public_key_hex: str) -> "SignedThresholdProver":
        return cls(verify_key=VerifyKey(bytes.fromhex(public_key_hex)))

    def verify(self, artifact: ProofArtifact) -> bool:
        if artifact.public_key and artifact.public_key.lower() != self.public_key_hex:
            return False
        return super().verify(artifact)

    def _prove(self, message: bytes) -> bytes:
        if self._key is None:
            raise ProofGenerationError("prover holds only a verify key")
        return self._key.sign(message).signature

    def _verify(self, message: bytes, proof: bytes) -> bool:
        try:
            self.verify_key.verify(message, proof)
        except BadSignatureError:
            return False
        return True


def build_prover(cfg) -> Prover | None:
    """Select the prover backend from settings; None when proofs are disabled."""
    if not cfg.proofs_enabled:
        return None
    if cfg.proof_mode == "signed":
        return SignedThresholdProver(load_signing_key(cfg.prover_key_hex, "prover"), salt=cfg.salt_bytes)
    return MockProver(salt=cfg.salt_bytes)


def build_verifier(cfg, artifact: ProofArtifact | None = None) -> Prover | None:
    """A prover that checks stored proofs without the private prover seed.

    Signed proofs use ``prover_verify_key_hex`` when set, else the key derived
    from ``prover_key_hex``, else the key embedded in *artifact* (integrity
    only; the embedded key is not authenticated). None when nothing applies.
    """
    if not cfg.proofs_enabled:
        return None
    if cfg.proof_mode != "signed":
        return MockProver(salt=cfg.salt_bytes)
    if cfg.prover_verify_key_hex:
        key_hex = cfg.prover_verify_key_hex
    elif cfg.prover_key_hex:
        key_hex = bytes(load_signing_key(cfg.prover_key_hex, "prover").verify_key).hex()
    elif artifact is not None and artifact.public_key:
        logger.warning("No prover verify key configured; checking against the key stored in the proof")
        key_hex = artifact.public_key
    else:
        return None
    verifier = SignedThresholdProver.verifier(key_hex)
    verifier.salt = cfg.salt_bytes
    return verifier
