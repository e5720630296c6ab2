"""Proof subsystem — threshold provers behind one interface."""

from .prover import (
    MockProver,
    ProofArtifact,
    ProofGenerationError,
    Prover,
    SignedThresholdProver,
    build_prover,
    build_verifier,
)
