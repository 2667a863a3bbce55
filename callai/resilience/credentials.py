"""Credential state and API key refresh.

One ``CredentialState`` is shared by every call in the process. Only
``KeyRefresher.refresh`` mutates it, and only one refresh runs at a time:
the ``refresh_in_flight`` flag is the lock, which is sound because all
callers run on one event loop and the flag is checked and set without an
await in between.
"""

import asyncio
import time
from dataclasses import dataclass, field
from functools import lru_cache

from callai.config.settings import Settings, get_settings
from callai.errors import KeyRefreshError, TransportError
from callai.logging.debug import get_logger
from callai.transport.http import ChatTransport

KEYS_PATH = "/api/keys"

logger = get_logger("credentials")


@dataclass
class KeyMetadata:
    hash: str | None = None
    issued_at: float | None = None
    expires_at: float | str | None = None
    remaining: float | None = None
    limit: float | None = None


@dataclass
class CredentialState:
    current_key: str | None
    refresh_endpoint: str
    refresh_token: str
    refresh_in_flight: bool = False
    last_refresh_attempt_at: float | None = None  # time.monotonic()
    key_metadata: dict[str, KeyMetadata] = field(default_factory=dict)
    last_refresh_error: Exception | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CredentialState":
        settings = settings or get_settings()
        return cls(
            current_key=settings.api_key or None,
            refresh_endpoint=settings.refresh_endpoint,
            refresh_token=settings.refresh_token,
        )

    def hash_for(self, key: str | None) -> str | None:
        if not key or key not in self.key_metadata:
            return None
        return self.key_metadata[key].hash

    def store_metadata(self, key: str, key_hash: str | None, metadata: dict | None) -> None:
        metadata = metadata or {}
        self.key_metadata[key] = KeyMetadata(
            hash=key_hash or metadata.get("hash"),
            issued_at=metadata.get("created") or time.time(),
            expires_at=metadata.get("expires"),
            remaining=metadata.get("remaining"),
            limit=metadata.get("limit"),
        )


@lru_cache
def get_credential_state() -> CredentialState:
    """Process-wide credential state, initialized once from settings."""
    return CredentialState.from_settings()


@dataclass(frozen=True)
class RefreshResult:
    api_key: str
    topup: bool  # same key hash: the existing key was credited, not replaced


class KeyRefresher:
    """Obtains a replacement key from the key service."""

    def __init__(
        self,
        state: CredentialState,
        transport: ChatTransport,
        settings: Settings | None = None,
    ):
        self.state = state
        self.transport = transport
        self.settings = settings or get_settings()

    async def refresh(
        self,
        current_key: str | None,
        endpoint: str | None = None,
        refresh_token: str | None = None,
    ) -> RefreshResult:
        """Refresh the key, or wait for the refresh another caller started.

        Raises:
            KeyRefreshError: the key service failed or returned no key. A
                caller that waited on someone else's refresh gets that
                refresh's error.
        """
        state = self.state
        endpoint = endpoint or state.refresh_endpoint
        refresh_token = refresh_token or state.refresh_token
        if not endpoint:
            raise KeyRefreshError("No API key refresh endpoint specified")
        if not refresh_token:
            raise KeyRefreshError("No API key refresh token specified")

        if state.refresh_in_flight:
            return await self._wait_for_refresh()

        state.refresh_in_flight = True
        try:
            await self._respect_min_interval()
            state.last_refresh_attempt_at = time.monotonic()
            state.last_refresh_error = None
            return await self._request_key(current_key, endpoint, refresh_token)
        except KeyRefreshError as e:
            state.last_refresh_error = e
            logger.warning("API key refresh failed", extra={"debug_data": {"error": str(e)}})
            raise
        finally:
            state.refresh_in_flight = False

    async def _wait_for_refresh(self) -> RefreshResult:
        state = self.state
        logger.debug("Waiting for in-flight key refresh")
        while state.refresh_in_flight:
            await asyncio.sleep(self.settings.refresh_poll_interval)

        if state.last_refresh_error is not None:
            raise state.last_refresh_error
        if not state.current_key:
            raise KeyRefreshError("Key refresh finished without issuing a key")
        return RefreshResult(api_key=state.current_key, topup=False)

    async def _respect_min_interval(self) -> None:
        last = self.state.last_refresh_attempt_at
        if last is None:
            return
        remaining = self.settings.refresh_min_interval - (time.monotonic() - last)
        if remaining > 0:
            logger.debug(
                "Rate limiting key refresh",
                extra={"debug_data": {"delay_seconds": round(remaining, 3)}},
            )
            await asyncio.sleep(remaining)

    async def _request_key(self, current_key: str | None, endpoint: str, refresh_token: str) -> RefreshResult:
        state = self.state
        url = f"{endpoint.rstrip('/')}{KEYS_PATH}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {refresh_token}",
        }
        body = {"key": current_key, "hash": state.hash_for(current_key)}

        logger.debug("Requesting API key refresh", extra={"debug_data": {"url": url}})
        try:
            data = await self.transport.post_json(url, body, headers)
        except TransportError as e:
            raise KeyRefreshError(f"API key refresh failed: {e}", status_code=e.status_code) from e

        if not isinstance(data, dict) or not data.get("key"):
            raise KeyRefreshError("Invalid response from key refresh endpoint: missing key")

        new_key = data["key"]
        old_hash = state.hash_for(current_key)
        topup = bool(old_hash and data.get("hash") == old_hash)

        state.store_metadata(new_key, data.get("hash"), data.get("metadata"))
        state.current_key = new_key

        logger.info(
            "API key topped up" if topup else "API key refreshed",
            extra={"debug_data": {"topup": topup}},
        )
        return RefreshResult(api_key=new_key, topup=topup)
