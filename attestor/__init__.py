"""Uptime attestor: liveness sampling, batch commitments, proofs and ledger posting."""

__version__ = "0.1.0"
