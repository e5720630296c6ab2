"""SQLite-backed local ledger used when posting mode is "mock".

Content-addressed: the commitment is blake3(namespace || data), so submitting
the same payload twice returns the original entry instead of a new one.
Heights are a monotonically increasing submission sequence.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from pathlib import Path

from blake3 import blake3

from attestor.ledger.models import LedgerClient, LedgerEntry

logger = logging.getLogger(__name__)


def mock_commitment(namespace: bytes, data: bytes) -> str:
    return blake3(namespace + data).hexdigest()


class MockLedger(LedgerClient):
    """Local stand-in for the data-availability layer."""

    mode = "mock"

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS blobs (
                    height INTEGER PRIMARY KEY AUTOINCREMENT,
                    namespace TEXT NOT NULL,
                    commitment TEXT NOT NULL,
                    data BLOB NOT NULL,
                    submitted_at INTEGER NOT NULL,
                    UNIQUE (namespace, commitment)
                );

                CREATE INDEX IF NOT EXISTS idx_blobs_namespace
                    ON blobs (namespace, height);
            """)
            self._conn.commit()

    def submit(self, namespace: bytes, data: bytes) -> LedgerEntry:
        ns = namespace.hex()
        commitment = mock_commitment(namespace, data)
        with self._lock:
            row = self._conn.execute(
                "SELECT height, submitted_at FROM blobs WHERE namespace = ? AND commitment = ?",
                (ns, commitment),
            ).fetchone()
            if row:
                logger.debug("Blob %s already in ledger at height %d", commitment[:16], row["height"])
                return LedgerEntry(commitment, row["height"], ns, row["submitted_at"])

            submitted_at = int(time.time())
            cur = self._conn.execute(
                "INSERT INTO blobs (namespace, commitment, data, submitted_at) VALUES (?, ?, ?, ?)",
                (ns, commitment, data, submitted_at),
            )
            self._conn.commit()
            height = cur.lastrowid

        logger.debug("Mock ledger accepted %d bytes at height %d", len(data), height)
        return LedgerEntry(commitment, height, ns, submitted_at)

    def get(self, namespace: bytes, commitment: str) -> bytes | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM blobs WHERE namespace = ? AND commitment = ?",
                (namespace.hex(), commitment.lower()),
            ).fetchone()
        return bytes(row["data"]) if row else None

    def get_at(self, namespace: bytes, height: int) -> list[bytes]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT data FROM blobs WHERE namespace = ? AND height = ?",
                (namespace.hex(), height),
            ).fetchall()
        return [bytes(r["data"]) for r in rows]

    def entries(self, namespace: bytes, limit: int = 100) -> list[LedgerEntry]:
        """Most recent entries in a namespace, newest first."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT height, commitment, submitted_at FROM blobs "
                "WHERE namespace = ? ORDER BY height DESC LIMIT ?",
                (namespace.hex(), limit),
            ).fetchall()
        ns = namespace.hex()
        return [LedgerEntry(r["commitment"], r["height"], ns, r["submitted_at"]) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
