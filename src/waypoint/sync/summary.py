"""Read-only client for the server's per-day location summary."""

import logging
from datetime import date
from typing import Any, Callable

import httpx

from waypoint import __version__
from waypoint.auth import CredentialProvider, resolve_token

logger = logging.getLogger(__name__)


class SummaryClient:
    """Fetches the locations recorded server-side for one day.

    Every failure (no token, network error, bad status, unexpected body)
    yields an empty list; callers only ever see "no data".
    """

    def __init__(
        self,
        url_for: Callable[[str], str],
        credentials: CredentialProvider,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the summary client.

        Args:
            url_for: Builds the summary URL from an ISO date string
            credentials: Source of the bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport for tests
        """
        self.url_for = url_for
        self.credentials = credentials
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": f"waypoint-agent/{__version__}"},
            transport=transport,
        )

    async def fetch(self, day: date) -> list[dict[str, Any]]:
        """Get the day's recorded locations.

        Args:
            day: Calendar day to query

        Returns:
            The ``locations`` list from the server, or [] on any failure
        """
        token = await resolve_token(self.credentials)
        if not token:
            logger.warning("Summary skipped: no credential available")
            return []

        url = self.url_for(day.isoformat())
        try:
            response = await self._client.get(
                url, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            logger.warning("Summary request failed: %s", e)
            return []

        if response.status_code != 200:
            logger.warning(
                "Summary request returned %d for %s", response.status_code, day
            )
            return []

        try:
            locations = response.json()["locations"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Summary response malformed: %s", e)
            return []

        if not isinstance(locations, list):
            logger.warning("Summary response malformed: locations is not a list")
            return []
        return locations

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SummaryClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
