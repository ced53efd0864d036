"""Network reachability monitoring with subscribable state transitions."""

import asyncio
import logging
from enum import Enum
from typing import Protocol, Sequence

import httpx

from waypoint.logging import log_state_change, state_logger
from waypoint.monitor.channel import Channel, Subscription

logger = logging.getLogger(__name__)


class ConnectivityState(Enum):
    """Whether any network path to the server is available."""

    OFFLINE = "offline"
    ONLINE = "online"


class ReachabilityProbe(Protocol):
    """One transport-level reachability signal."""

    name: str

    async def check(self) -> bool: ...


class TcpProbe:
    """Reachable if a TCP connection to host:port can be opened."""

    def __init__(self, host: str, port: int = 443, timeout: float = 3.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.name = f"tcp:{host}:{port}"

    async def check(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class HttpProbe:
    """Reachable if a GET on the URL answers without a server error."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.name = f"http:{url}"
        self._transport = transport

    async def check(self) -> bool:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport
            ) as client:
                response = await client.get(self.url)
            return response.status_code < 500
        except httpx.HTTPError:
            return False


class ConnectivityMonitor:
    """Tracks whether the device is online and broadcasts transitions.

    The state is the union of all probes: any probe reachable means ONLINE.
    A background task re-evaluates the probes every ``poll_interval``
    seconds once ``start()`` is called; ``report()`` accepts transitions
    pushed by an external signal source.

    Subscribers each get their own stream of transitions; duplicate
    consecutive states can occur and must be treated as idempotent.

    ``last_known`` is the synchronous snapshot and never touches the
    network. ``current_state()`` returns the same value once a state has
    been observed, and runs the single initial check otherwise.

    Example:
        monitor = ConnectivityMonitor([TcpProbe("example.com")])
        await monitor.start()
        async with monitor.subscribe() as transitions:
            async for state in transitions:
                print(state)
    """

    def __init__(
        self,
        probes: Sequence[ReachabilityProbe],
        poll_interval: float = 5.0,
    ) -> None:
        """Initialize the monitor.

        Args:
            probes: Reachability probes to combine
            poll_interval: Seconds between background re-checks
        """
        self.probes = list(probes)
        self.poll_interval = poll_interval

        self._state: ConnectivityState | None = None
        self._channel: Channel[ConnectivityState] = Channel("connectivity")
        self._check_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None
        self._log = state_logger()

    @property
    def last_known(self) -> ConnectivityState | None:
        """Last observed state without triggering a check."""
        return self._state

    async def current_state(self) -> ConnectivityState:
        """Get the last known state.

        If the state has never been observed, runs exactly one reachability
        check (concurrent callers share it).
        """
        if self._state is not None:
            return self._state

        async with self._check_lock:
            if self._state is None:
                await self._check_locked()
        return self._state

    async def refresh(self) -> ConnectivityState:
        """Run the probes now and publish the result if it changed."""
        async with self._check_lock:
            return await self._check_locked()

    async def _check_locked(self) -> ConnectivityState:
        results = await asyncio.gather(
            *(probe.check() for probe in self.probes), return_exceptions=True
        )
        reachable = False
        for probe, result in zip(self.probes, results):
            if isinstance(result, BaseException):
                logger.debug("Probe %s raised: %s", probe.name, result)
                continue
            reachable = reachable or bool(result)

        new_state = ConnectivityState.ONLINE if reachable else ConnectivityState.OFFLINE
        if new_state != self._state:
            self._transition(new_state, "probe")
        return new_state

    def report(self, state: ConnectivityState, trigger: str = "external") -> None:
        """Accept a transition from an external signal source.

        Always published, even when the state did not change.
        """
        if state != self._state:
            self._transition(state, trigger)
        else:
            self._channel.publish(state)

    def _transition(self, new_state: ConnectivityState, trigger: str) -> None:
        old_state = self._state
        self._state = new_state
        log_state_change(
            self._log,
            old_state.value if old_state else "unknown",
            new_state.value,
            trigger=trigger,
        )
        self._channel.publish(new_state)

    def subscribe(self) -> Subscription[ConnectivityState]:
        """Attach a subscriber to state transitions.

        Returns:
            Subscription handle; close it to unsubscribe
        """
        return self._channel.subscribe()

    async def start(self) -> None:
        """Start background polling."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.create_task(self._poll_worker())

    async def _poll_worker(self) -> None:
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Connectivity check failed: %s", e)
            await asyncio.sleep(self.poll_interval)

    async def stop(self) -> None:
        """Stop polling and close every subscription."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        self._channel.close()
