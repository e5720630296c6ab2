"""Console rendering of batch summaries."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from attestor.batching.batch import Batch

console = Console()


def format_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def batch_table(batch: Batch, namespace: str, proof_status: str) -> Table:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Window start", f"{batch.window.start} ({format_timestamp(batch.window.start)})")
    table.add_row("Window end", f"{batch.window.end} ({format_timestamp(batch.window.end)})")
    table.add_row("Samples", str(batch.n))
    table.add_row("OK / failed", f"{batch.good} / {batch.failed}")
    table.add_row("Uptime", f"{batch.uptime_percent:.2f}%")
    meets = "[green]yes[/green]" if batch.meets_threshold else "[red]no[/red]"
    table.add_row("Threshold", f"{batch.threshold} ({meets})")
    table.add_row("Bitmap hash", batch.bitmap_hash)
    table.add_row("Proof", proof_status)
    table.add_row("Namespace", namespace)
    return table


def print_batch_summary(batch: Batch, namespace: str, proof_status: str) -> None:
    style = "green" if batch.meets_threshold else "yellow"
    console.print(Panel(batch_table(batch, namespace, proof_status), title="Batch attestation", style=style))
