"""Structured JSON logging for the Waypoint agent.

Provides audit-friendly logging with contextual fields for capture, routing
and sync events. Coordinates are only ever logged at DEBUG level.

Usage:
    from waypoint.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("waypoint.sync")
    log.info("drain_finished", extra={"delivered": 3, "remaining": 0})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from waypoint import __version__

# Default device identifier (can be overridden)
_device_id: str | None = None


class WaypointJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that adds agent context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        log_record["agent_version"] = __version__
        if _device_id:
            log_record["device_id"] = _device_id

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    device_id: str | None = None,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        device_id: Identifier for this device, added to every record
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    global _device_id
    if device_id:
        _device_id = device_id

    formatter = WaypointJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr so stdout stays free for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Logger name (e.g., 'waypoint.sync', 'waypoint.state')

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def sync_logger() -> logging.Logger:
    """Get logger for routing, upload and drain events."""
    return get_logger("waypoint.sync")


def state_logger() -> logging.Logger:
    """Get logger for state changes."""
    return get_logger("waypoint.state")


# --- Audit Event Functions ---


def log_sample_routed(
    logger: logging.Logger,
    decision: str,
    reason: str,
    entry_id: int | None = None,
) -> None:
    """Log where the router sent a freshly captured sample.

    Args:
        logger: Logger instance
        decision: "delivered" or "queued"
        reason: Why (fast_path, offline, no_token, upload_rejected, ...)
        entry_id: Queue id when the sample was queued
    """
    extra: dict = {
        "event": "sample_routed",
        "decision": decision,
        "reason": reason,
    }
    if entry_id is not None:
        extra["entry_id"] = entry_id
    logger.info("Sample routed", extra=extra)


def log_upload_failed(
    logger: logging.Logger,
    outcome: str,
    detail: str | None,
    entry_id: int | None = None,
) -> None:
    """Log a failed upload attempt.

    Args:
        logger: Logger instance
        outcome: Upload outcome value (rejected, transport_failed, ...)
        detail: Rejection reason or transport cause (no sensitive data)
        entry_id: Queue id when the upload came from a drain
    """
    extra: dict = {
        "event": "upload_failed",
        "outcome": outcome,
        "detail": detail,
    }
    if entry_id is not None:
        extra["entry_id"] = entry_id
    logger.warning("Upload failed", extra=extra)


def log_drain_finished(
    logger: logging.Logger,
    trigger: str,
    delivered: int,
    remaining: int,
    stopped_on: int | None = None,
) -> None:
    """Log the end of a drain pass."""
    extra: dict = {
        "event": "drain_finished",
        "trigger": trigger,
        "delivered": delivered,
        "remaining": remaining,
    }
    if stopped_on is not None:
        extra["stopped_on"] = stopped_on
    logger.info("Drain finished", extra=extra)


def log_state_change(
    logger: logging.Logger,
    old_state: str,
    new_state: str,
    trigger: str | None = None,
) -> None:
    """Log a state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        trigger: What triggered the change
    """
    extra = {
        "event": "state_change",
        "old_state": old_state,
        "new_state": new_state,
    }
    if trigger:
        extra["trigger"] = trigger
    logger.info("State changed", extra=extra)
