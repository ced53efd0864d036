"""Async HTTP uploader delivering one sample per call."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from waypoint import __version__
from waypoint.auth import CredentialProvider, resolve_token
from waypoint.capture.sample import Sample

# Statuses that mean "try again later" rather than "no"
_TRANSIENT_STATUSES = {408, 429}


class UploadOutcome(Enum):
    """How a single delivery attempt ended."""

    DELIVERED = "delivered"
    REJECTED = "rejected"
    TRANSPORT_FAILED = "transport_failed"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class UploadResult:
    """Result of an upload attempt.

    ``detail`` carries the rejection reason or the transport cause.
    """

    outcome: UploadOutcome
    detail: str | None = None
    status_code: int | None = None

    @property
    def delivered(self) -> bool:
        return self.outcome is UploadOutcome.DELIVERED

    @classmethod
    def ok(cls, status_code: int = 201) -> "UploadResult":
        return cls(UploadOutcome.DELIVERED, status_code=status_code)

    @classmethod
    def rejected(cls, reason: str, status_code: int | None = None) -> "UploadResult":
        return cls(UploadOutcome.REJECTED, reason, status_code)

    @classmethod
    def transport_failed(
        cls, cause: str, status_code: int | None = None
    ) -> "UploadResult":
        return cls(UploadOutcome.TRANSPORT_FAILED, cause, status_code)

    @classmethod
    def unauthenticated(cls) -> "UploadResult":
        return cls(UploadOutcome.UNAUTHENTICATED, "no credential available")


class SampleUploader:
    """Async HTTP uploader for position samples.

    Uses httpx.AsyncClient for connection pooling. Each ``send`` is exactly
    one attempt, bounded by ``timeout`` as a whole; retrying is left to the
    sync engine, which knows about ordering.

    Classification:
        201 -> DELIVERED
        5xx, 408, 429, connection errors, timeouts -> TRANSPORT_FAILED
        anything else -> REJECTED
    """

    def __init__(
        self,
        track_url: str,
        credentials: CredentialProvider,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            track_url: Full URL of the collection endpoint (e.g. http://host/track)
            credentials: Source of the bearer token
            timeout: Seconds allowed for the whole request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.track_url = track_url
        self.credentials = credentials
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": f"waypoint-agent/{__version__}"},
            transport=transport,
        )

    async def send(self, sample: Sample) -> UploadResult:
        """Deliver one sample to the collection endpoint.

        Fails fast with UNAUTHENTICATED, without touching the network, when
        no token is available.

        Args:
            sample: Sample to deliver

        Returns:
            UploadResult describing the outcome
        """
        token = await resolve_token(self.credentials)
        if not token:
            return UploadResult.unauthenticated()

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self.track_url,
                    json=sample.to_payload(),
                    headers={"Authorization": f"Bearer {token}"},
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            return UploadResult.transport_failed(f"Timeout: {str(e) or 'upload timed out'}")
        except httpx.ConnectError as e:
            return UploadResult.transport_failed(f"Connection error: {e}")
        except httpx.HTTPError as e:
            return UploadResult.transport_failed(f"HTTP error: {e}")

        status = response.status_code
        if status == 201:
            return UploadResult.ok(status)

        if status >= 500 or status in _TRANSIENT_STATUSES:
            return UploadResult.transport_failed(f"Server error: {status}", status)

        return UploadResult.rejected(
            f"Rejected: {status} - {response.text[:200]}", status
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> "SampleUploader":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()
