"""Sync engine draining the sample queue in capture order."""

import asyncio
import logging
from dataclasses import dataclass

from waypoint.logging import log_drain_finished, log_upload_failed, sync_logger
from waypoint.monitor.channel import Subscription
from waypoint.monitor.connectivity import ConnectivityMonitor, ConnectivityState
from waypoint.sync.queue import SampleQueue
from waypoint.sync.uploader import SampleUploader, UploadOutcome

logger = logging.getLogger(__name__)


@dataclass
class DrainReport:
    """What one drain pass did."""

    trigger: str
    delivered: int = 0
    remaining: int = 0
    skipped: str | None = None  # offline, empty
    stopped_on: int | None = None
    outcome: UploadOutcome | None = None
    quarantined: bool = False


class SyncEngine:
    """Drains the SampleQueue through the uploader.

    Drains are started by two triggers: a connectivity transition to ONLINE
    and a periodic timer. Only one drain runs at a time; a trigger that
    arrives while a drain is in flight is dropped.

    Within a drain, entries are sent oldest-first and the pass stops at the
    first entry that is not delivered. Nothing after a stuck entry is ever
    removed, so the server always receives samples in capture order.

    Example:
        engine = SyncEngine(queue, uploader, monitor, interval=60.0)
        await engine.start()
        ...
        await engine.stop()
    """

    def __init__(
        self,
        queue: SampleQueue,
        uploader: SampleUploader,
        monitor: ConnectivityMonitor,
        interval: float = 60.0,
        max_rejections: int = 0,
    ) -> None:
        """Initialize the sync engine.

        Args:
            queue: Queue to drain
            uploader: Uploader used for every entry
            monitor: Connectivity source for triggers and pre-checks
            interval: Seconds between timer-triggered drains
            max_rejections: Rejections after which an entry is moved to the
                dead-letter table; 0 keeps retrying it forever
        """
        self.queue = queue
        self.uploader = uploader
        self.monitor = monitor
        self.interval = interval
        self.max_rejections = max_rejections

        self._drain_lock = asyncio.Lock()
        self._drain_tasks: set[asyncio.Task] = set()
        self._subscription: Subscription[ConnectivityState] | None = None
        self._connectivity_task: asyncio.Task | None = None
        self._timer_task: asyncio.Task | None = None
        self._running = False
        self._drain_count = 0
        self._log = sync_logger()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def is_draining(self) -> bool:
        return self._drain_lock.locked()

    @property
    def drain_count(self) -> int:
        """Number of completed drain passes (skipped ones included)."""
        return self._drain_count

    async def start(self) -> None:
        """Subscribe to connectivity, start the timer and drain once."""
        if self._running:
            return

        self._running = True
        self._subscription = self.monitor.subscribe()
        self._connectivity_task = asyncio.create_task(
            self._connectivity_worker(self._subscription)
        )
        self._timer_task = asyncio.create_task(self._timer_worker())

        # Samples left over from a previous session
        self.trigger("startup")
        logger.info("Sync engine started, interval=%ss", self.interval)

    async def _connectivity_worker(
        self, subscription: Subscription[ConnectivityState]
    ) -> None:
        async for state in subscription:
            if state is ConnectivityState.ONLINE:
                self.trigger("connectivity")

    async def _timer_worker(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.trigger("timer")

    def trigger(self, reason: str) -> asyncio.Task | None:
        """Start a drain in the background unless one is already running.

        Args:
            reason: What fired the trigger (for logs)

        Returns:
            The drain task, or None if the trigger was a no-op
        """
        if self._drain_lock.locked() or any(not t.done() for t in self._drain_tasks):
            logger.debug("Drain already in flight, trigger ignored: %s", reason)
            return None

        task = asyncio.create_task(self._run_drain(reason))
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)
        return task

    async def _run_drain(self, reason: str) -> DrainReport | None:
        try:
            return await self.drain(reason)
        except Exception as e:
            # Queue is left as it was; the next trigger retries
            logger.error("Drain failed: trigger=%s, error=%s", reason, e, exc_info=True)
            return None

    async def drain(self, trigger: str = "manual") -> DrainReport | None:
        """Deliver pending entries in order until one fails.

        Args:
            trigger: What started this drain (for logs)

        Returns:
            DrainReport, or None if another drain was already running

        Raises:
            StorageError: the queue could not be read or updated
        """
        if self._drain_lock.locked():
            return None

        async with self._drain_lock:
            try:
                return await self._drain_locked(trigger)
            finally:
                self._drain_count += 1

    async def _drain_locked(self, trigger: str) -> DrainReport:
        report = DrainReport(trigger=trigger)

        state = await self.monitor.current_state()
        if state is not ConnectivityState.ONLINE:
            report.skipped = "offline"
            logger.debug("Drain skipped: offline")
            return report

        entries = self.queue.list_pending()
        if not entries:
            report.skipped = "empty"
            logger.debug("Drain skipped: queue empty")
            return report

        logger.info("Draining %d pending samples, trigger=%s", len(entries), trigger)

        for entry in entries:
            result = await self.uploader.send(entry.sample)

            if result.delivered:
                self.queue.remove(entry.id)
                report.delivered += 1
                continue

            report.stopped_on = entry.id
            report.outcome = result.outcome
            log_upload_failed(self._log, result.outcome.value, result.detail, entry.id)

            if result.outcome is UploadOutcome.REJECTED and self.max_rejections > 0:
                rejections = self.queue.record_rejection(entry.id, result.detail)
                if rejections >= self.max_rejections:
                    report.quarantined = self.queue.quarantine(
                        entry.id, f"rejected {rejections} times: {result.detail}"
                    )
            break

        report.remaining = self.queue.count()
        log_drain_finished(
            self._log, trigger, report.delivered, report.remaining, report.stopped_on
        )
        return report

    async def wait_idle(self) -> None:
        """Wait for any in-flight background drain to finish."""
        pending = [t for t in self._drain_tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def stop(self) -> None:
        """Stop triggering drains.

        Cancels the timer and the connectivity subscription, then lets an
        in-flight drain run to completion. The queue is left untouched.
        """
        if not self._running:
            return

        self._running = False
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

        for task in (self._timer_task, self._connectivity_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._timer_task = None
        self._connectivity_task = None

        await self.wait_idle()
        logger.info("Sync engine stopped, drains=%d", self._drain_count)
