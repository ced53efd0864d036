"""Tracking orchestrator coordinating capture, routing and sync."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from waypoint.auth import CredentialProvider, provider_from_settings
from waypoint.capture import CaptureLoop, PositionSource, Sample
from waypoint.config import Settings
from waypoint.engine.router import RouteDecision, SampleRouter
from waypoint.engine.sync_engine import SyncEngine
from waypoint.errors import StorageError
from waypoint.monitor import ConnectivityMonitor, HttpProbe, TcpProbe
from waypoint.monitor.connectivity import ReachabilityProbe
from waypoint.sync import SampleQueue, SampleUploader

logger = logging.getLogger(__name__)


def probes_from_settings(settings: Settings) -> list[ReachabilityProbe]:
    """Build the configured reachability probes.

    Falls back to an HTTP probe against the server itself when no probe is
    configured.
    """
    probes: list[ReachabilityProbe] = []
    if settings.probe_host:
        probes.append(TcpProbe(settings.probe_host, settings.probe_port))
    if settings.probe_url:
        probes.append(HttpProbe(settings.probe_url))
    if not probes:
        probes.append(HttpProbe(settings.server_url))
    return probes


class TrackingService:
    """High-level service tying the pipeline together.

    Every collaborator is passed in explicitly; ``from_settings`` builds the
    default set. This is the entry point the CLI uses.

    Example:
        service = TrackingService.from_settings(settings, source)
        await service.start()
        # ... run until stopped ...
        await service.stop()
    """

    def __init__(
        self,
        capture_loop: CaptureLoop,
        queue: SampleQueue,
        uploader: SampleUploader,
        monitor: ConnectivityMonitor,
        credentials: CredentialProvider,
        sync_interval: float = 60.0,
        max_rejections: int = 0,
    ) -> None:
        self.capture_loop = capture_loop
        self.queue = queue
        self.uploader = uploader
        self.monitor = monitor
        self.credentials = credentials

        self.router = SampleRouter(queue, uploader, monitor, credentials)
        self.sync_engine = SyncEngine(
            queue,
            uploader,
            monitor,
            interval=sync_interval,
            max_rejections=max_rejections,
        )

        self._running = False
        self._route_tasks: set[asyncio.Task] = set()
        self._started_at: datetime | None = None
        self._counts = {"delivered": 0, "queued": 0, "failed": 0}

        self.capture_loop.on_sample(self._handle_sample)

    @classmethod
    def from_settings(
        cls, settings: Settings, source: PositionSource
    ) -> "TrackingService":
        """Build a service with the default components for these settings."""
        credentials = provider_from_settings(settings)
        return cls(
            capture_loop=CaptureLoop(source, poll_interval=settings.capture_poll_interval),
            queue=SampleQueue(settings.queue_path, max_pending=settings.max_pending),
            uploader=SampleUploader(
                settings.track_url, credentials, timeout=settings.upload_timeout
            ),
            monitor=ConnectivityMonitor(
                probes_from_settings(settings),
                poll_interval=settings.connectivity_poll_interval,
            ),
            credentials=credentials,
            sync_interval=settings.sync_interval,
            max_rejections=settings.max_rejections,
        )

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the pipeline.

        Opens the queue, starts connectivity polling and the sync engine,
        then starts consuming positions.

        Raises:
            StorageError: the queue cannot be opened
        """
        if self._running:
            return

        # Fail early on an unusable queue rather than on the first sample
        pending = self.queue.count()
        self._running = True
        self._started_at = datetime.now()

        await self.monitor.start()
        await self.sync_engine.start()
        await self.capture_loop.start()
        logger.info("Tracking started, pending=%d", pending)

    def _handle_sample(self, sample: Sample) -> None:
        """Route each sample on its own task so a slow upload never blocks capture."""
        if not self._running:
            return
        task = asyncio.create_task(self._route(sample))
        self._route_tasks.add(task)
        task.add_done_callback(self._route_tasks.discard)

    async def _route(self, sample: Sample) -> None:
        try:
            decision = await self.router.route(sample)
        except StorageError as e:
            self._counts["failed"] += 1
            logger.error("Sample could not be queued: %s", e)
            return
        except Exception as e:
            self._counts["failed"] += 1
            logger.error("Sample routing failed: %s", e, exc_info=True)
            return

        if decision is RouteDecision.DELIVERED:
            self._counts["delivered"] += 1
        else:
            self._counts["queued"] += 1

    async def wait_routed(self) -> None:
        """Wait until every sample captured so far has been routed."""
        pending = [t for t in self._route_tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def sync_now(self) -> None:
        """Trigger a drain immediately (no-op if one is running)."""
        self.sync_engine.trigger("manual")

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops capture first, then the sync engine (which lets an in-flight
        drain finish), waits for samples still being routed, and finally
        closes resources. Pending samples stay queued for the next session.
        """
        if not self._running:
            return
        self._running = False

        await self.capture_loop.stop()
        await self.sync_engine.stop()
        await self.wait_routed()
        await self.monitor.stop()

        await self.uploader.close()
        self.queue.close()

        logger.info(
            "Tracking stopped, delivered=%d, queued=%d, failed=%d",
            self._counts["delivered"],
            self._counts["queued"],
            self._counts["failed"],
        )

    def get_status(self) -> dict[str, Any]:
        """Get current service status.

        Returns:
            Dictionary with running state, connectivity, queue stats and
            routing counters
        """
        connectivity = self.monitor.last_known
        last_sample = self.capture_loop.last_sample_time
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "connectivity": connectivity.value if connectivity else "unknown",
            "draining": self.sync_engine.is_draining,
            "samples_captured": self.capture_loop.sample_count,
            "last_sample": last_sample.isoformat() if last_sample else None,
            "routed": dict(self._counts),
            "queue": self.queue.get_stats(),
        }
