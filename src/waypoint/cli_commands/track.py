"""Tracking management CLI commands."""

import asyncio
import json
import os
import signal
from pathlib import Path

import typer

from waypoint.capture import ReplayPositionSource
from waypoint.config import Settings, get_settings
from waypoint.errors import StorageError
from waypoint.logging import setup_logging

track_app = typer.Typer(
    name="track",
    help="Tracking management - start and stop the agent.",
    no_args_is_help=True,
)


def get_running_pid(settings: Settings) -> int | None:
    """Get the PID of the running agent, if any."""
    pid_file = settings.pid_path
    if not pid_file.exists():
        return None

    try:
        pid = int(pid_file.read_text().strip())
        # Check if process exists
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError):
        # Invalid PID or process doesn't exist
        pid_file.unlink(missing_ok=True)
        return None


def _write_pid(settings: Settings) -> None:
    settings.pid_path.parent.mkdir(parents=True, exist_ok=True)
    settings.pid_path.write_text(str(os.getpid()))


def _cleanup_pid(settings: Settings) -> None:
    settings.pid_path.unlink(missing_ok=True)


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


async def _run(settings: Settings, source: ReplayPositionSource) -> dict:
    """Run the pipeline until the source ends or a signal arrives."""
    from waypoint.engine import TrackingService

    service = TrackingService.from_settings(settings, source)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, stop_event.set)

    await service.start()
    try:
        source_done = asyncio.create_task(service.capture_loop.wait_closed())
        stopped = asyncio.create_task(stop_event.wait())
        await asyncio.wait({source_done, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in (source_done, stopped):
            task.cancel()
        await service.wait_routed()
        status = service.get_status()
    finally:
        await service.stop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(signum)
    return status


@track_app.command()
def start(
    replay: Path = typer.Option(
        ...,
        "--replay",
        "-r",
        exists=True,
        dir_okay=False,
        help="JSON Lines file of positions to replay",
    ),
    interval: float = typer.Option(
        1.0,
        "--interval",
        "-i",
        min=0.0,
        help="Seconds between replayed positions",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Start the tracking agent in the foreground.

    Captures positions from the replay file, uploads them when the server
    is reachable and queues them otherwise. Press Ctrl+C to stop; queued
    samples are kept for the next run.
    """
    settings = get_settings()

    existing_pid = get_running_pid(settings)
    if existing_pid:
        _output(
            {"status": "error", "message": "Agent already running", "pid": existing_pid},
            output_json,
            f"Agent already running (PID: {existing_pid}). Use 'waypoint track stop' first.",
        )
        raise typer.Exit(1)

    setup_logging(settings.log_level, settings.log_file)
    _output(
        {"status": "starting", "pid": os.getpid()},
        output_json,
        f"Starting Waypoint agent (server: {settings.server_url})...",
    )

    _write_pid(settings)
    try:
        status = asyncio.run(_run(settings, ReplayPositionSource(replay, interval)))
    except StorageError as e:
        _output(
            {"status": "error", "message": str(e)},
            output_json,
            f"Sample queue unavailable: {e}",
        )
        raise typer.Exit(1)
    finally:
        _cleanup_pid(settings)

    routed = status["routed"]
    _output(
        {"status": "stopped", **status},
        output_json,
        f"Agent stopped. Delivered: {routed['delivered']}, "
        f"queued: {routed['queued']}, pending: {status['queue']['pending']}",
    )


@track_app.command()
def stop(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Stop the running tracking agent."""
    settings = get_settings()
    pid = get_running_pid(settings)

    if not pid:
        _output(
            {"status": "not_running"},
            output_json,
            "No agent is currently running.",
        )
        return

    try:
        os.kill(pid, signal.SIGTERM)
        _output(
            {"status": "stopped", "pid": pid},
            output_json,
            f"Stopping Waypoint agent (PID: {pid})...",
        )
    except OSError as e:
        _output(
            {"status": "error", "message": str(e)},
            output_json,
            f"Failed to stop agent: {e}",
        )
        raise typer.Exit(1)
