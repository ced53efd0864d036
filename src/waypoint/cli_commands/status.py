"""Status command for Waypoint CLI."""

import json

import typer

from waypoint.cli_commands.track import get_running_pid
from waypoint.config import get_settings
from waypoint.errors import StorageError
from waypoint.sync.queue import SampleQueue

_EMPTY_STATS = {"pending": 0, "dead_letter": 0, "oldest": None, "newest": None}


def _get_queue_stats() -> dict:
    """Get sample queue statistics."""
    settings = get_settings()
    if not settings.queue_path.exists():
        return dict(_EMPTY_STATS)

    try:
        with SampleQueue(settings.queue_path) as queue:
            return queue.get_stats()
    except StorageError:
        return dict(_EMPTY_STATS)


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show agent status.

    Displays whether the agent is running and how many samples are waiting
    for upload.
    """
    settings = get_settings()
    pid = get_running_pid(settings)
    is_running = pid is not None
    queue_stats = _get_queue_stats()

    status_data = {
        "running": is_running,
        "state": "active" if is_running else "stopped",
        "pid": pid,
        "server_url": settings.server_url,
        "queue_pending": queue_stats["pending"],
        "queue_dead_letter": queue_stats["dead_letter"],
        "oldest_pending": queue_stats["oldest"],
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("Waypoint Agent Status")
    typer.echo("---------------------")

    if is_running:
        typer.echo("State: Active (tracking)")
        typer.echo(f"PID: {pid}")
    else:
        typer.echo("State: Not running")

    typer.echo(f"Queue: {queue_stats['pending']} pending uploads")
    if queue_stats["oldest"]:
        typer.echo(f"Oldest pending: {queue_stats['oldest']}")
    if queue_stats["dead_letter"] > 0:
        typer.echo(f"Dead letter: {queue_stats['dead_letter']} samples")
    typer.echo("")

    if not is_running:
        typer.echo("Start the agent with: waypoint track start --replay FILE")
