"""Position sources feeding the capture loop."""

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator, Protocol, runtime_checkable

from waypoint.capture.sample import Sample

logger = logging.getLogger(__name__)


@runtime_checkable
class PositionSource(Protocol):
    """Anything that can produce position samples.

    The device positioning subsystem lives behind this interface; the agent
    only needs a stream of samples plus an on-demand current fix.
    """

    def stream(self) -> AsyncIterator[Sample]:
        """Yield samples as they are captured."""
        ...

    async def current(self) -> Sample | None:
        """Return a fresh fix, or None when no position is available."""
        ...


class ReplayPositionSource:
    """Replays positions from a JSON Lines file.

    Each line is an object with ``latitude``, ``longitude`` and an optional
    ISO-8601 ``timestamp``. Lines without a timestamp are stamped with the
    current time when emitted. Malformed lines are logged and skipped.

    Example:
        source = ReplayPositionSource(Path("drive.jsonl"), interval=1.0)
        async for sample in source.stream():
            print(sample)
    """

    def __init__(self, path: Path, interval: float = 1.0) -> None:
        """Initialize the replay source.

        Args:
            path: JSON Lines file to replay
            interval: Seconds to wait between emitted samples
        """
        self.path = path
        self.interval = interval
        self._last: Sample | None = None

    async def stream(self) -> AsyncIterator[Sample]:
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    sample = Sample.from_payload(json.loads(line))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(
                        "Skipping malformed position line %d in %s: %s",
                        line_no, self.path, e,
                    )
                    continue

                self._last = sample
                yield sample
                await asyncio.sleep(self.interval)

    async def current(self) -> Sample | None:
        """Return the most recent position re-stamped with the current time."""
        if self._last is None:
            return None
        return self._last.restamped()
