"""`threadgate runs list|show|verify`."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from ..artifact.store import RunStore
from ..errors import InvalidRunIdError, RunNotFoundError


def run_runs_list(store: RunStore) -> int:
    console = Console()
    listings = store.list_runs()

    table = Table(title=f"Runs in {store.root}")
    table.add_column("run_id", style="cyan", no_wrap=True)
    table.add_column("started_at", style="dim")
    table.add_column("symbol")
    table.add_column("post_type", style="magenta")
    table.add_column("generated")
    table.add_column("published")

    for r in listings:
        table.add_row(
            r.run_id,
            r.started_at or "",
            r.symbol or "",
            r.post_type or "",
            "yes" if r.has_run else "no",
            "[green]yes[/green]" if r.published else "no",
        )

    console.print(table)
    return 0


def run_runs_show(store: RunStore, run_id: str, *, output_json: bool = False) -> int:
    err = Console(stderr=True)
    console = Console()
    try:
        artifacts = store.load_run_artifacts(run_id)
    except (RunNotFoundError, InvalidRunIdError) as e:
        err.print(str(e), style="bold red")
        return 1

    if output_json:
        print(json.dumps(artifacts.to_dict(), indent=2, sort_keys=True))
        return 0

    report = store.read_report(run_id) or {}
    publish = store.read_publish_result(run_id) or {}

    console.print(f"[bold]{artifacts.run_id}[/bold] {artifacts.symbol} ({artifacts.post_type})")
    console.print(f"  started:     {artifacts.started_at}")
    console.print(f"  completed:   {artifacts.completed_at}")
    console.print(f"  publishable: {report.get('isPublishable', False)}")
    if artifacts.missing_fields:
        console.print(f"  missing:     {', '.join(artifacts.missing_fields)}")
    if publish.get("tweetIds"):
        console.print(f"  published:   {', '.join(publish['tweetIds'])}")

    for error in report.get("validationErrors", []):
        console.print(f"  [red]{error.get('code')}[/red] {error.get('message')}")

    if artifacts.generated_thread:
        console.print()
        for part in artifacts.generated_thread:
            console.print(part, markup=False)

    if artifacts.charts:
        table = Table(title="Charts")
        table.add_column("chart", style="cyan")
        table.add_column("bytes", justify="right")
        for name, svg in sorted(artifacts.charts.items()):
            table.add_row(name, str(len(svg.encode("utf-8"))))
        console.print(table)
    return 0


def run_runs_verify(store: RunStore, run_id: str) -> int:
    err = Console(stderr=True)
    console = Console()
    try:
        results = store.verify_run(run_id)
    except (RunNotFoundError, InvalidRunIdError) as e:
        err.print(str(e), style="bold red")
        return 1

    if not results:
        console.print(f"[yellow]{run_id} recorded no raw snapshots[/yellow]")
        return 0

    table = Table(title=f"Snapshots for {run_id}")
    table.add_column("snapshot", style="cyan")
    table.add_column("status")
    for name, intact in sorted(results.items()):
        table.add_row(name, "[green]ok[/green]" if intact else "[bold red]MODIFIED[/bold red]")
    console.print(table)

    tampered = [name for name, intact in results.items() if not intact]
    if tampered:
        err.print(f"{len(tampered)} snapshot(s) do not match their recorded sha256", style="bold red")
        return 1
    return 0
