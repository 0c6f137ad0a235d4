"""`threadgate publish`."""

from __future__ import annotations

import json

from rich.console import Console

from ..artifact.store import PUBLISH_FILE, RunStore
from ..config import Settings
from ..errors import (
    InvalidRunIdError,
    MissingCredentialsError,
    PublishCancelledError,
    PublishHTTPError,
    PublishInProgressError,
    PublishProtocolError,
    RunNotFoundError,
)
from ..publish.client import Transport, XClient
from ..publish.publisher import publish_thread

EXIT_OK = 0
EXIT_BLOCKED = 1
EXIT_TRANSPORT = 2


def run_publish(
    store: RunStore,
    settings: Settings,
    run_id: str,
    *,
    dry_run: bool = False,
    output_json: bool = False,
    transport: Transport | None = None,
) -> int:
    console = Console()
    err = Console(stderr=True)

    def make_client() -> XClient:
        return XClient.from_settings(settings, transport=transport)

    try:
        result = publish_thread(run_id, dry_run, store=store, client=make_client)
    except (RunNotFoundError, InvalidRunIdError) as e:
        err.print(str(e), style="bold red")
        return EXIT_BLOCKED
    except PublishInProgressError as e:
        err.print(str(e), style="bold red")
        return EXIT_BLOCKED
    except MissingCredentialsError as e:
        err.print(str(e), style="bold red")
        return EXIT_TRANSPORT
    except (PublishHTTPError, PublishProtocolError, PublishCancelledError) as e:
        err.print(f"Publish failed: {e}", style="bold red")
        return EXIT_TRANSPORT
    except OSError as e:
        err.print(f"Publish failed: {e}", style="bold red")
        return EXIT_TRANSPORT

    exit_code = EXIT_OK if result.is_publishable else EXIT_BLOCKED

    if output_json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
        return exit_code

    if not result.is_publishable:
        console.print(f"[red]Run {run_id} is not publishable[/red]")
        for error in result.errors or []:
            console.print(f"  [red]{error.code}[/red] {error.message}")
        return exit_code

    if result.published:
        console.print(f"[green]Published[/green] {run_id}: {len(result.tweet_ids or [])} tweet(s)")
        for tweet_id in result.tweet_ids or []:
            console.print(f"  {tweet_id}")
    elif result.dry_run:
        console.print(f"[green]Dry run staged[/green] {len(result.parts or [])} part(s)")
        console.print(f"  payload: {store.paths(run_id).run_dir / PUBLISH_FILE}")
    return exit_code
