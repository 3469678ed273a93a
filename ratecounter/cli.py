"""CLI commands for ratecounter."""

import logging
import time
from pathlib import Path

import click
from pydantic import ValidationError

from ratecounter.config import Settings, get_settings, set_config_path


@click.group()
@click.version_option(package_name="ratecounter")
@click.option(
    "-f",
    "--config-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file (default: ./ratecounter.yaml)",
)
def cli(config_file):
    """ratecounter - count requests over a sliding window."""
    if config_file is not None:
        set_config_path(config_file)


def _build_settings(**overrides) -> Settings:
    """Apply CLI overrides on top of env/YAML settings."""
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        base = get_settings()
        return Settings(**{**base.model_dump(), **overrides})
    except (ValidationError, ValueError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--route", default=None, help="Path of the counter endpoint")
@click.option("--window", "window_seconds", default=None, type=int, help="Window length in seconds")
@click.option(
    "--strategy",
    default=None,
    type=click.Choice(["ring", "sparse"]),
    help="Bucket storage strategy",
)
@click.option("--flush-interval", default=None, type=float, help="Seconds between tally flushes")
@click.option(
    "--snapshot-interval",
    default=None,
    type=float,
    help="Seconds between periodic snapshots (0 disables)",
)
@click.option(
    "--output-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Snapshot file used across restarts",
)
@click.option("--persist/--no-persist", default=None, help="Load and save snapshots")
@click.option("--debug/--no-debug", default=None, help="Show the bucket contents in responses")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(**options):
    """Run the counter server."""
    import asyncio
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    from ratecounter.asgi import create_app
    from ratecounter.lib import observability

    settings = _build_settings(**options)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = Config()
    config.bind = [f"{settings.host}:{settings.port}"]
    config.loglevel = settings.log_level.upper()
    config.include_server_header = False

    app = observability.instrument_app(create_app(settings))

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


@cli.command()
@click.argument(
    "snapshot_file",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option("--at", "at", default=None, type=float, help="Epoch seconds to evaluate at (default: now)")
def inspect(snapshot_file, at):
    """Print the request total stored in a snapshot file."""
    from ratecounter.controllers import format_count
    from ratecounter.lib.exceptions import SnapshotError
    from ratecounter.lib.snapshot import read_snapshot, restore_store

    if snapshot_file is None:
        snapshot_file = _build_settings().output_file

    try:
        snapshot = read_snapshot(snapshot_file)
    except SnapshotError as exc:
        raise click.ClickException(str(exc)) from exc

    now = at if at is not None else time.time()
    store = restore_store(snapshot)
    store.reconcile(now)

    click.echo(f"{snapshot_file} ({store.strategy})")
    click.echo(format_count(store.total(now), store.window))
    click.echo(f"Buffer: {store.describe()}")
