"""CLI entrypoint for threadgate."""

import sys
from pathlib import Path

import click

from . import __version__
from .artifact.store import RunStore
from .config import load_settings
from .log import configure_logging


@click.group()
@click.version_option(__version__, prog_name="threadgate")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (defaults to ./threadgate.toml when present)",
)
@click.option(
    "--runs-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Directory holding generation runs (overrides settings)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log verbosity (defaults to settings, WARNING)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, runs_dir: Path | None, log_level: str | None) -> None:
    """threadgate - Gate and publish flow-alert threads.

    Generate a run from live flow data, inspect it, then publish it once.
    """
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_path)
    except FileNotFoundError as e:
        raise click.BadParameter(str(e), param_hint="--config") from e

    configure_logging(log_level or settings.log_level)

    ctx.obj["settings"] = settings
    ctx.obj["store"] = RunStore(runs_dir or settings.runs_dir)


@cli.command()
@click.option("--symbol", type=str, default=None, help="Only consider events for this ticker")
@click.option("--run-id", type=str, default=None, help="Reuse an explicit run id")
@click.option(
    "--post-type",
    type=click.Choice(["options", "dark_pool"]),
    default=None,
    help="Event kind to post (defaults to the first live candidate)",
)
@click.option("--json", "output_json", is_flag=True, help="Output the run report as JSON")
@click.pass_context
def generate(
    ctx: click.Context,
    symbol: str | None,
    run_id: str | None,
    post_type: str | None,
    output_json: bool,
) -> None:
    """Generate a run: fetch flow, build the thread and charts, gate and persist.

    Exits 1 when the run is not publishable.
    """
    from .commands.generate_cmd import run_generate

    exit_code = run_generate(
        ctx.obj["store"],
        ctx.obj["settings"],
        symbol=symbol,
        run_id=run_id,
        post_type=post_type,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--run-id", type=str, required=True, help="Run to publish")
@click.option("--dry-run", is_flag=True, help="Validate and stage the payload without posting")
@click.option("--json", "output_json", is_flag=True, help="Output the publish result as JSON")
@click.pass_context
def publish(ctx: click.Context, run_id: str, dry_run: bool, output_json: bool) -> None:
    """Publish a generated run as a thread, at most once.

    \b
    Exit codes:
      0  published, already published, or dry run staged
      1  blocked by the publish gate (or run missing / locked)
      2  transport or credential failure
    """
    from .commands.publish_cmd import run_publish

    sys.exit(run_publish(ctx.obj["store"], ctx.obj["settings"], run_id, dry_run=dry_run, output_json=output_json))


@cli.group()
def runs() -> None:
    """Inspect persisted runs."""
    pass


@runs.command("list")
@click.pass_context
def runs_list(ctx: click.Context) -> None:
    """List runs, oldest first."""
    from .commands.runs_cmd import run_runs_list

    sys.exit(run_runs_list(ctx.obj["store"]))


@runs.command("show")
@click.argument("run_id")
@click.option("--json", "output_json", is_flag=True, help="Output the full run artifact as JSON")
@click.pass_context
def runs_show(ctx: click.Context, run_id: str, output_json: bool) -> None:
    """Show one run's report and thread."""
    from .commands.runs_cmd import run_runs_show

    sys.exit(run_runs_show(ctx.obj["store"], run_id, output_json=output_json))


@runs.command("verify")
@click.argument("run_id")
@click.pass_context
def runs_verify(ctx: click.Context, run_id: str) -> None:
    """Re-hash every raw snapshot of a run and compare with the recorded sha256."""
    from .commands.runs_cmd import run_runs_verify

    sys.exit(run_runs_verify(ctx.obj["store"], run_id))


if __name__ == "__main__":
    cli()
