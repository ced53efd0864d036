"""Sync module for sample upload and offline queue management."""

from waypoint.sync.queue import DeadLetterEntry, QueuedEntry, SampleQueue
from waypoint.sync.summary import SummaryClient
from waypoint.sync.uploader import SampleUploader, UploadOutcome, UploadResult

__all__ = [
    "DeadLetterEntry",
    "QueuedEntry",
    "SampleQueue",
    "SampleUploader",
    "SummaryClient",
    "UploadOutcome",
    "UploadResult",
]
