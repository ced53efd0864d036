"""Commands that talk to the collection server: one-off sync and summary."""

import asyncio
import json
from datetime import date

import typer

from waypoint.auth import provider_from_settings
from waypoint.config import Settings, get_settings
from waypoint.errors import StorageError
from waypoint.logging import setup_logging


async def _sync_once(settings: Settings) -> dict:
    from waypoint.engine import SyncEngine
    from waypoint.engine.orchestrator import probes_from_settings
    from waypoint.monitor import ConnectivityMonitor
    from waypoint.sync import SampleQueue, SampleUploader

    credentials = provider_from_settings(settings)
    monitor = ConnectivityMonitor(probes_from_settings(settings))
    queue = SampleQueue(settings.queue_path)
    async with SampleUploader(
        settings.track_url, credentials, timeout=settings.upload_timeout
    ) as uploader:
        engine = SyncEngine(
            queue, uploader, monitor, max_rejections=settings.max_rejections
        )
        try:
            await monitor.refresh()
            report = await engine.drain("cli")
        finally:
            queue.close()

    return {
        "connectivity": monitor.last_known.value if monitor.last_known else "unknown",
        "delivered": report.delivered,
        "remaining": report.remaining,
        "skipped": report.skipped,
        "stopped_on": report.stopped_on,
        "outcome": report.outcome.value if report.outcome else None,
        "quarantined": report.quarantined,
    }


def sync_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Drain the offline queue once, then exit."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)

    try:
        result = asyncio.run(_sync_once(settings))
    except StorageError as e:
        if output_json:
            typer.echo(json.dumps({"status": "error", "message": str(e)}))
        else:
            typer.echo(f"Sample queue unavailable: {e}", err=True)
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps(result))
        return

    if result["skipped"] == "offline":
        typer.echo("Server unreachable; nothing sent.")
    elif result["skipped"] == "empty":
        typer.echo("Queue is empty; nothing to send.")
    else:
        typer.echo(f"Delivered {result['delivered']}, {result['remaining']} remaining.")
        if result["outcome"]:
            typer.echo(f"Stopped at entry #{result['stopped_on']}: {result['outcome']}")


async def _fetch_summary(settings: Settings, day: date) -> list:
    from waypoint.sync import SummaryClient

    async with SummaryClient(
        settings.summary_url,
        provider_from_settings(settings),
        timeout=settings.upload_timeout,
    ) as client:
        return await client.fetch(day)


def summary_command(
    day: str = typer.Argument(
        None,
        help="Day to show (YYYY-MM-DD, default: today)",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show the locations the server recorded for a day."""
    try:
        target = date.fromisoformat(day) if day else date.today()
    except ValueError:
        typer.echo(f"Invalid date: {day}", err=True)
        raise typer.Exit(2)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    locations = asyncio.run(_fetch_summary(settings, target))

    if output_json:
        typer.echo(json.dumps({"date": target.isoformat(), "locations": locations}))
        return

    if not locations:
        typer.echo(f"No locations recorded for {target.isoformat()}.")
        return

    typer.echo(f"{len(locations)} locations on {target.isoformat()}:")
    for loc in locations:
        typer.echo(
            f"  {loc.get('timestamp', '?')}  {loc.get('latitude')}, {loc.get('longitude')}"
        )
