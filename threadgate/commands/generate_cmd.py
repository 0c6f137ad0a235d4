"""`threadgate generate`."""

from __future__ import annotations

import json

from rich.console import Console

from ..artifact.store import REPORT_FILE, RunStore
from ..config import Settings
from ..errors import ThreadgateError
from ..gate.patterns import DEFAULT_CATALOG, load_catalog
from ..generation.builder import ChainPostBuilder
from ..generation.orchestrator import generate_run
from ..market.cache import TTLCache
from ..market.feeds import LiveFeeds, MarketFeeds


def run_generate(
    store: RunStore,
    settings: Settings,
    *,
    symbol: str | None = None,
    run_id: str | None = None,
    post_type: str | None = None,
    output_json: bool = False,
    feeds: MarketFeeds | None = None,
) -> int:
    console = Console()
    err = Console(stderr=True)

    catalog = load_catalog(settings.catalog_path, extend_defaults=True) if settings.catalog_path else DEFAULT_CATALOG
    if feeds is None:
        feeds = LiveFeeds.from_settings(settings, chain_cache=TTLCache(settings.chain_cache_ttl_s))
    builder = ChainPostBuilder(feeds, catalog=catalog)

    try:
        result = generate_run(
            store,
            symbol=symbol,
            run_id=run_id,
            post_type=post_type,
            feeds=feeds,
            builder=builder,
        )
    except ThreadgateError as e:
        err.print(f"Generation failed: {e}", style="bold red")
        return 1

    report = result.report
    if output_json:
        print(json.dumps(report, indent=2, sort_keys=True))
        return 0 if report["isPublishable"] else 1

    paths = store.paths(result.run_id)
    console.print(f"[bold]Run[/bold] {result.run_id}")
    console.print(f"  report:    {paths.run_dir / REPORT_FILE}")
    console.print(f"  artifacts: {paths.artifacts_dir}")
    console.print(f"  symbol:    {report['symbol']} ({report['postType']})")

    if report["isPublishable"]:
        console.print("[green]Publishable[/green]")
        return 0

    console.print("[red]Not publishable[/red]")
    for error in report["validationErrors"]:
        console.print(f"  [red]{error['code']}[/red] {error['message']}")
    gate = result.artifacts.validation
    if gate is not None:
        for error in gate.errors:
            console.print(f"  [yellow]gate[/yellow] {error['code']} {error['message']}")
    return 1
