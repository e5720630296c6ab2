"""Ledger subsystem — clients for the data-availability layer and the poster."""

from pathlib import Path

from .celestia import CelestiaLedger
from .mock import MockLedger
from .models import LedgerClient, LedgerEntry, LedgerError
from .poster import BatchAttestation, Poster, PostingError


def build_ledger(cfg) -> LedgerClient:
    """Select the ledger backend from settings."""
    if cfg.poster_mode == "real":
        return CelestiaLedger(cfg.ledger_url, cfg.ledger_auth_token, timeout=cfg.ledger_timeout_secs)
    return MockLedger(Path(cfg.data_dir) / "ledger.db")
