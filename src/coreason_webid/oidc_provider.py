# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_webid

"""
OIDC Provider component for fetching and caching a remote provider's metadata and JWKS.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from coreason_webid.exceptions import CoreasonWebIDError, OversizedResponseError, SecurityError
from coreason_webid.models_internal import ProviderMetadata
from coreason_webid.uri import WELL_KNOWN_CONFIGURATION
from coreason_webid.transport import fetch_json
from coreason_webid.utils.logger import logger


class OIDCProvider:
    """
    Fetches and caches one issuer's provider metadata and JWKS.

    Attributes:
        issuer (str): The provider origin.
        cache_ttl (int): The cache time-to-live in seconds.
    """

    def __init__(
        self,
        issuer: str,
        client: httpx.AsyncClient,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
        max_response_bytes: int = 1_000_000,
    ) -> None:
        """
        Initialize the OIDCProvider.

        Args:
            issuer: The provider origin (e.g., https://provider.example).
            client: The async HTTP client to use for requests.
            cache_ttl: Time-to-live for the caches in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
            max_response_bytes: Upper bound for the fetched documents.
        """
        self.issuer = issuer.rstrip("/")
        self.discovery_url = f"{self.issuer}{WELL_KNOWN_CONFIGURATION}"
        self.client = client
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self.max_response_bytes = max_response_bytes
        self._metadata_cache: ProviderMetadata | None = None
        self._jwks_cache: dict[str, Any] | None = None
        self._last_update: float = 0.0
        self._lock: anyio.Lock | None = None

    async def _fetch(self, url: str, what: str) -> Any:
        """
        Fetches a JSON document, retrying transient failures up to 3 times with
        exponential backoff (initial=0.1s, max=1.0s).

        Raises:
            CoreasonWebIDError: If the request fails after retries.
        """
        attempts = 3
        wait_initial = 0.1
        wait_max = 1.0

        for attempt in range(attempts):
            try:
                return await fetch_json(self.client, url, self.max_response_bytes)
            except (OversizedResponseError, SecurityError):
                raise
            except (httpx.HTTPError, ValueError) as e:
                if attempt == attempts - 1:
                    raise CoreasonWebIDError(f"Failed to fetch {what} from {url}: {e}") from e
                await anyio.sleep(min(wait_initial * (2**attempt), wait_max))

        raise CoreasonWebIDError(f"Failed to fetch {what} from {url}")  # pragma: no cover

    async def _refresh(self, force_refresh: bool) -> None:
        """
        Critical section for refreshing metadata and keys. Must be called while holding the lock.
        """
        current_time = time.time()
        age = current_time - self._last_update
        populated = self._metadata_cache is not None and self._jwks_cache is not None

        if not force_refresh and populated and age < self.cache_ttl:
            return

        if force_refresh and populated and age < self.refresh_cooldown:
            logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
            return

        data = await self._fetch(self.discovery_url, "provider metadata")
        try:
            metadata = ProviderMetadata(**data)
        except (TypeError, ValidationError) as e:
            raise CoreasonWebIDError(f"Invalid provider metadata from {self.discovery_url}: {e}") from e

        jwks = await self._fetch(metadata.jwks_uri, "JWKS")
        if not isinstance(jwks, dict) or "keys" not in jwks:
            raise CoreasonWebIDError(f"Invalid JWKS from {metadata.jwks_uri}")

        self._metadata_cache = metadata
        self._jwks_cache = jwks
        self._last_update = current_time

    async def _ensure(self, force_refresh: bool = False) -> None:
        if self._lock is None:
            self._lock = anyio.Lock()

        # Double-checked locking (check 1: no lock)
        if (
            not force_refresh
            and self._metadata_cache is not None
            and (time.time() - self._last_update) < self.cache_ttl
        ):
            return

        async with self._lock:
            await self._refresh(force_refresh)

    async def get_metadata(self) -> ProviderMetadata:
        """
        Returns the provider metadata, using the cache if valid.

        Raises:
            CoreasonWebIDError: If fetching fails.
        """
        await self._ensure()
        if self._metadata_cache is None:
            raise CoreasonWebIDError("Failed to load provider metadata")
        return self._metadata_cache

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache (subject to the refresh cooldown).

        Raises:
            CoreasonWebIDError: If fetching fails.
        """
        await self._ensure(force_refresh)
        if self._jwks_cache is None:
            raise CoreasonWebIDError("Failed to load JWKS")
        return self._jwks_cache
