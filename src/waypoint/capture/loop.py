"""Capture loop consuming a position source."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from waypoint.capture.sample import Sample
from waypoint.capture.source import PositionSource
from waypoint.monitor.channel import Channel

logger = logging.getLogger(__name__)


class CaptureState(Enum):
    """State of the capture loop."""

    RUNNING = "running"
    STOPPED = "stopped"


class CaptureLoop:
    """Pulls samples from a PositionSource and hands them to callbacks.

    Two tasks feed the callbacks: one consumes ``source.stream()``, the other
    (optional) asks ``source.current()`` for a fresh fix every
    ``poll_interval`` seconds so a stationary device still reports in.
    Every sample is also published on ``live_samples`` for display
    consumers.

    Source errors are logged and never end the loop.

    Example:
        loop = CaptureLoop(source, poll_interval=60.0)
        loop.on_sample(lambda s: print(s.captured_at))
        await loop.start()
        ...
        await loop.stop()
    """

    def __init__(
        self,
        source: PositionSource,
        poll_interval: float = 0.0,
        retry_delay: float = 5.0,
    ) -> None:
        """Initialize the capture loop.

        Args:
            source: Where samples come from
            poll_interval: Seconds between forced fixes, 0 disables
            retry_delay: Seconds to wait before reopening a failed stream
        """
        self.source = source
        self.poll_interval = poll_interval
        self.retry_delay = retry_delay
        self.live_samples: Channel[Sample] = Channel("live_samples")

        self._state = CaptureState.STOPPED
        self._stream_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._last_sample_at: datetime | None = None
        self._sample_count = 0

        self._sample_callbacks: list[Callable[[Sample], None]] = []

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def sample_count(self) -> int:
        return self._sample_count

    @property
    def last_sample_time(self) -> datetime | None:
        """Wall-clock time the last sample was accepted."""
        return self._last_sample_at

    def on_sample(self, callback: Callable[[Sample], None]) -> None:
        """Register callback for each captured sample.

        Args:
            callback: Function called with the Sample
        """
        self._sample_callbacks.append(callback)

    def _accept(self, sample: Sample, reason: str) -> None:
        if self._state != CaptureState.RUNNING:
            return

        self._sample_count += 1
        self._last_sample_at = datetime.now(timezone.utc)
        logger.debug(
            "Sample captured: lat=%.6f, lon=%.6f, reason=%s",
            sample.latitude, sample.longitude, reason,
        )
        self.live_samples.publish(sample)

        for callback in self._sample_callbacks:
            try:
                callback(sample)
            except Exception as e:
                logger.error("Sample callback failed: %s", e, exc_info=True)

    async def start(self) -> None:
        """Start consuming the source in background tasks."""
        if self._state == CaptureState.RUNNING:
            return

        self._state = CaptureState.RUNNING
        self._stream_task = asyncio.create_task(self._stream_worker())
        if self.poll_interval > 0:
            self._poll_task = asyncio.create_task(self._poll_worker())
        logger.info("Capture loop started, poll_interval=%s", self.poll_interval)

    async def _stream_worker(self) -> None:
        while self._state == CaptureState.RUNNING:
            try:
                async for sample in self.source.stream():
                    if self._state != CaptureState.RUNNING:
                        return
                    self._accept(sample, "stream")
                logger.info("Position stream ended")
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Position stream failed: %s", e)

            await asyncio.sleep(self.retry_delay)

    async def _poll_worker(self) -> None:
        while self._state == CaptureState.RUNNING:
            await asyncio.sleep(self.poll_interval)
            try:
                sample = await self.source.current()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Current position fetch failed: %s", e)
                continue

            if sample is None:
                logger.debug("No current position available")
                continue
            self._accept(sample, "poll")

    async def wait_closed(self) -> None:
        """Wait until the position stream is exhausted."""
        if self._stream_task is not None:
            await asyncio.gather(self._stream_task, return_exceptions=True)

    async def stop(self) -> None:
        """Stop accepting samples and cancel the source tasks."""
        if self._state == CaptureState.STOPPED:
            return

        self._state = CaptureState.STOPPED
        for task in (self._stream_task, self._poll_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._stream_task = None
        self._poll_task = None
        self.live_samples.close()
        logger.info("Capture loop stopped, samples=%d", self._sample_count)
