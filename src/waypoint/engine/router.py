"""Per-sample routing: upload now or queue for later."""

from enum import Enum

from waypoint.auth import CredentialProvider, resolve_token
from waypoint.capture.sample import Sample
from waypoint.logging import log_sample_routed, log_upload_failed, sync_logger
from waypoint.monitor.connectivity import ConnectivityMonitor, ConnectivityState
from waypoint.sync.queue import SampleQueue
from waypoint.sync.uploader import SampleUploader


class RouteDecision(Enum):
    """Where a routed sample ended up."""

    DELIVERED = "delivered"
    QUEUED = "queued"


class SampleRouter:
    """Decides, for each new sample, between the fast path and the queue.

    The fast path is only an optimization: by the time ``route`` returns,
    the sample has either been accepted by the server or committed to the
    queue. If the queue itself fails, StorageError propagates.
    """

    def __init__(
        self,
        queue: SampleQueue,
        uploader: SampleUploader,
        monitor: ConnectivityMonitor,
        credentials: CredentialProvider,
    ) -> None:
        self.queue = queue
        self.uploader = uploader
        self.monitor = monitor
        self.credentials = credentials
        self._log = sync_logger()

    async def route(self, sample: Sample) -> RouteDecision:
        """Route one freshly captured sample.

        Args:
            sample: The captured sample

        Returns:
            DELIVERED if the server accepted it, QUEUED otherwise

        Raises:
            StorageError: the sample could not be queued
        """
        token = await resolve_token(self.credentials)
        if not token:
            return self._enqueue(sample, "no_token")

        state = await self.monitor.current_state()
        if state is not ConnectivityState.ONLINE:
            return self._enqueue(sample, "offline")

        result = await self.uploader.send(sample)
        if result.delivered:
            log_sample_routed(self._log, RouteDecision.DELIVERED.value, "fast_path")
            return RouteDecision.DELIVERED

        log_upload_failed(self._log, result.outcome.value, result.detail)
        return self._enqueue(sample, f"upload_{result.outcome.value}")

    def _enqueue(self, sample: Sample, reason: str) -> RouteDecision:
        entry_id = self.queue.enqueue(sample)
        log_sample_routed(self._log, RouteDecision.QUEUED.value, reason, entry_id)
        return RouteDecision.QUEUED
