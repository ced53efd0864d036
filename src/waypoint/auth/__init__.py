"""Credential providers for authenticating uploads."""

import inspect
import logging
from pathlib import Path
from typing import Awaitable, Protocol, runtime_checkable

from waypoint.config import Settings

logger = logging.getLogger(__name__)

__all__ = [
    "CredentialProvider",
    "FileTokenProvider",
    "StaticTokenProvider",
    "provider_from_settings",
    "resolve_token",
]


@runtime_checkable
class CredentialProvider(Protocol):
    """Supplies the bearer token for the collection endpoint.

    ``get_token`` may be a plain or an async method. It must not have side
    effects; returning None means no credential is currently available.
    """

    def get_token(self) -> str | None | Awaitable[str | None]: ...


class StaticTokenProvider:
    """Returns a fixed token (or None)."""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token


class FileTokenProvider:
    """Reads the token from a file on every call.

    The file is re-read each time so a login flow elsewhere on the device
    can drop a fresh token in place without restarting the agent. A missing
    or empty file means no credential.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    def get_token(self) -> str | None:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read token file %s: %s", self.path, e)
            return None
        return token or None


async def resolve_token(provider: CredentialProvider) -> str | None:
    """Call a provider, awaiting the result if it is awaitable."""
    token = provider.get_token()
    if inspect.isawaitable(token):
        token = await token
    return token or None


def provider_from_settings(settings: Settings) -> CredentialProvider:
    """Pick the credential provider configured in settings.

    An explicit token takes precedence over a token file.
    """
    if settings.token is not None:
        return StaticTokenProvider(settings.token.get_secret_value())
    if settings.token_file is not None:
        return FileTokenProvider(settings.token_file)
    return StaticTokenProvider(None)
