"""Entry point for the uptime attestor."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from attestor.batching.batch import verify_batch
from attestor.config import Settings
from attestor.proofs.prover import build_verifier
from attestor.report import batch_table
from attestor.storage import ArtifactStore

console = Console()


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        console.print(Panel(str(e), title="Invalid configuration", style="bold red"))
        sys.exit(2)


def run_server(cfg: Settings) -> None:
    """Start the ingestion API and both pipeline timers."""
    console.print(Panel(
        f"tick every {cfg.tick_secs}s, batch every {cfg.window_secs}s ({cfg.window_samples} samples)\n"
        f"poster: {cfg.poster_mode}  proofs: {cfg.proof_mode if cfg.proofs_enabled else 'disabled'}  "
        f"namespace: {cfg.namespace}",
        title="Starting Uptime Attestor",
        style="bold green",
    ))
    uvicorn.run(
        "attestor.api.server:create_app",
        factory=True,
        host=cfg.api_host,
        port=cfg.api_port,
        reload=False,
    )


def show_config(cfg: Settings) -> None:
    console.print_json(data={
        **cfg.model_dump(exclude={"signing_key_hex", "prover_key_hex", "ledger_auth_token"}),
        "window_samples": cfg.window_samples,
        "buffer_capacity": cfg.buffer_capacity,
    })


def verify_stored(cfg: Settings) -> int:
    """Recompute the stored batch from bitmap.hex and check the stored proof."""
    store = ArtifactStore(cfg.data_dir)
    loaded = store.load_batch()
    if loaded is None:
        console.print(f"[red]No batch files in {cfg.data_dir}[/red]")
        return 1
    batch, bitmap = loaded
    console.print(batch_table(batch, cfg.namespace, "-"))

    ok = verify_batch(batch, bitmap, cfg.threshold_fraction, cfg.salt_bytes)
    console.print(f"Batch matches bitmap: {'[green]yes[/green]' if ok else '[red]no[/red]'}")

    artifact = store.load_proof()
    if artifact is not None and cfg.proofs_enabled:
        try:
            verifier = build_verifier(cfg, artifact)
        except ValueError as e:
            console.print(f"[red]Invalid prover verify key: {e}[/red]")
            verifier = None
        if verifier is None:
            console.print("[red]No prover verify key available for this proof[/red]")
            return 1
        proof_ok = (
            verifier.verify(artifact)
            and artifact.bitmap_hash == batch.bitmap_hash
            and artifact.n == batch.n
            and artifact.threshold == batch.threshold
        )
        console.print(f"Proof verifies: {'[green]yes[/green]' if proof_ok else '[red]no[/red]'}")
        ok = ok and proof_ok
    return 0 if ok else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Uptime Attestor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the ingestion API and the pipeline")
    sub.add_parser("config", help="Print the effective configuration")
    sub.add_parser("verify", help="Verify the stored batch, bitmap and proof")

    args = parser.parse_args()
    cfg = load_settings()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command == "serve":
        run_server(cfg)
    elif args.command == "config":
        show_config(cfg)
    elif args.command == "verify":
        sys.exit(verify_stored(cfg))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
