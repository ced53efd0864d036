"""Sample queue inspection and maintenance CLI commands."""

import json

import typer

from waypoint.config import get_settings
from waypoint.errors import StorageError
from waypoint.sync.queue import SampleQueue

queue_app = typer.Typer(
    name="queue",
    help="Offline queue - inspect, clear and recover queued samples.",
    no_args_is_help=True,
)

JSON_OPTION = typer.Option(False, "--json", "-j", help="Output in JSON format")


def _open_queue() -> SampleQueue:
    settings = get_settings()
    return SampleQueue(settings.queue_path)


def _fail(message: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps({"status": "error", "message": message}))
    else:
        typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


@queue_app.command(name="list")
def list_pending(
    limit: int = typer.Option(50, "--limit", "-n", min=1, help="Entries to show"),
    output_json: bool = JSON_OPTION,
) -> None:
    """List samples waiting for upload, oldest first."""
    try:
        with _open_queue() as queue:
            entries = queue.list_pending()
    except StorageError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps([
            {"id": entry.id, **entry.sample.to_payload()} for entry in entries[:limit]
        ]))
        return

    if not entries:
        typer.echo("Queue is empty.")
        return

    for entry in entries[:limit]:
        s = entry.sample
        typer.echo(
            f"  #{entry.id:<6} {s.captured_at.isoformat()}  "
            f"{s.latitude:.6f}, {s.longitude:.6f}"
        )
    if len(entries) > limit:
        typer.echo(f"  ... and {len(entries) - limit} more")


@queue_app.command()
def stats(output_json: bool = JSON_OPTION) -> None:
    """Show queue statistics."""
    try:
        with _open_queue() as queue:
            data = queue.get_stats()
    except StorageError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps(data))
        return

    typer.echo(f"Pending: {data['pending']}")
    typer.echo(f"Dead letter: {data['dead_letter']}")
    if data["oldest"]:
        typer.echo(f"Oldest: {data['oldest']}")
        typer.echo(f"Newest: {data['newest']}")


@queue_app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    dead_letter: bool = typer.Option(
        False, "--dead-letter", help="Clear the dead-letter table instead"
    ),
    output_json: bool = JSON_OPTION,
) -> None:
    """Delete queued samples. They will never be uploaded."""
    target = "dead-letter samples" if dead_letter else "pending samples"
    if not yes:
        typer.confirm(f"Delete all {target}?", abort=True)

    try:
        with _open_queue() as queue:
            if dead_letter:
                removed = queue.clear_dead_letter()
            else:
                removed = queue.count()
                queue.clear()
    except StorageError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps({"status": "cleared", "removed": removed}))
    else:
        typer.echo(f"Removed {removed} {target}.")


@queue_app.command(name="dead-letter")
def list_dead_letter(output_json: bool = JSON_OPTION) -> None:
    """List samples taken out of automatic retry."""
    try:
        with _open_queue() as queue:
            entries = queue.list_dead_letter()
    except StorageError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps([
            {
                "id": entry.id,
                "reason": entry.reason,
                "quarantined_at": entry.quarantined_at.isoformat(),
                **entry.sample.to_payload(),
            }
            for entry in entries
        ]))
        return

    if not entries:
        typer.echo("Dead letter is empty.")
        return

    for entry in entries:
        typer.echo(
            f"  #{entry.id:<6} {entry.sample.captured_at.isoformat()}  {entry.reason}"
        )


@queue_app.command()
def requeue(output_json: bool = JSON_OPTION) -> None:
    """Move dead-letter samples back into the upload queue."""
    try:
        with _open_queue() as queue:
            count = queue.requeue_dead_letter()
    except StorageError as e:
        _fail(str(e), output_json)
        return

    if output_json:
        typer.echo(json.dumps({"status": "requeued", "count": count}))
    else:
        typer.echo(f"Requeued {count} samples.")
