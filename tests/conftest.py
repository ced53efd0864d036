"""Shared fixtures and test doubles for the Waypoint test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from waypoint.capture.sample import Sample
from waypoint.monitor.connectivity import ConnectivityMonitor
from waypoint.sync.queue import SampleQueue
from waypoint.sync.uploader import UploadResult

T0 = datetime(2026, 1, 24, 12, 0, 0, tzinfo=timezone.utc)


def make_sample(offset_seconds: float = 0.0, lat: float = 10.0, lon: float = 20.0) -> Sample:
    """Sample captured ``offset_seconds`` after T0."""
    return Sample(lat, lon, T0 + timedelta(seconds=offset_seconds))


class FakeProbe:
    """Reachability probe whose answer the test controls."""

    def __init__(self, reachable: bool = True, name: str = "fake") -> None:
        self.reachable = reachable
        self.name = name
        self.calls = 0

    async def check(self) -> bool:
        self.calls += 1
        return self.reachable


class StubUploader:
    """Records every sample sent and answers from a script.

    ``decide`` (if given) maps a sample to a result; otherwise results are
    popped from ``outcomes`` and ``default`` is used once it runs out.
    """

    def __init__(
        self,
        outcomes: list[UploadResult] | None = None,
        decide: Callable[[Sample], UploadResult] | None = None,
        default: UploadResult | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.outcomes = list(outcomes or [])
        self.decide = decide
        self.default = default or UploadResult.ok()
        self.gate = gate
        self.sent: list[Sample] = []
        self.closed = False

    async def send(self, sample: Sample) -> UploadResult:
        self.sent.append(sample)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.decide is not None:
            return self.decide(sample)
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default

    async def close(self) -> None:
        self.closed = True


class StaticCredentials:
    def __init__(self, token: str | None = "test-token") -> None:
        self.token = token

    def get_token(self) -> str | None:
        return self.token


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate`` holds or fail."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def queue(tmp_path):
    """Fresh on-disk sample queue."""
    q = SampleQueue(tmp_path / "queue.db")
    yield q
    q.close()


@pytest.fixture
def probe():
    return FakeProbe(reachable=True)


@pytest.fixture
def monitor(probe):
    return ConnectivityMonitor([probe], poll_interval=60.0)


@pytest.fixture
def credentials():
    return StaticCredentials()
