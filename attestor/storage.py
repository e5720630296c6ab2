"""Local artifact files — samples.json, batch.json, bitmap.hex, proof.json.

Every write goes to a temp file in the same directory and is moved into place
with os.replace, so readers only ever see a complete previous or new file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from attestor.batching.batch import Batch
from attestor.proofs.prover import ProofArtifact
from attestor.sampling.models import Sample

logger = logging.getLogger(__name__)

SAMPLES_FILE = "samples.json"
BATCH_FILE = "batch.json"
BITMAP_FILE = "bitmap.hex"
PROOF_FILE = "proof.json"


def atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class ArtifactStore:
    """Writes and reads the derived files in ``data_dir``."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _write_json(self, name: str, payload: Any) -> None:
        atomic_write(self.data_dir / name, json.dumps(payload, indent=2))

    def _read_json(self, name: str) -> Any | None:
        path = self.data_dir / name
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def save_samples(self, samples: Iterable[Sample]) -> None:
        self._write_json(SAMPLES_FILE, [s.to_dict() for s in samples])

    def save_batch(self, batch: Batch, bitmap: bytes) -> None:
        self._write_json(BATCH_FILE, batch.to_dict())
        atomic_write(self.data_dir / BITMAP_FILE, bitmap.hex())
        logger.debug("Batch files saved to %s", self.data_dir)

    def save_proof(self, artifact: ProofArtifact) -> None:
        self._write_json(PROOF_FILE, artifact.to_dict())

    def load_samples(self) -> list[Sample]:
        data = self._read_json(SAMPLES_FILE) or []
        return [Sample.from_dict(d) for d in data]

    def load_batch(self) -> tuple[Batch, bytes] | None:
        data = self._read_json(BATCH_FILE)
        bitmap_path = self.data_dir / BITMAP_FILE
        if data is None or not bitmap_path.exists():
            return None
        return Batch.from_dict(data), bytes.fromhex(bitmap_path.read_text(encoding="utf-8").strip())

    def load_proof(self) -> ProofArtifact | None:
        data = self._read_json(PROOF_FILE)
        return ProofArtifact.from_dict(data) if data else None
