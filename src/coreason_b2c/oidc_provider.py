# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
KeySetClient component for fetching and caching the B2C signing keys (JWKS).
"""

import time
from typing import Protocol

import anyio
import httpx
from pydantic import ValidationError

from coreason_b2c.exceptions import KeySetFetchError, UnknownKeyError
from coreason_b2c.models_internal import JsonWebKeySet, JwkKey
from coreason_b2c.transport import safe_json_fetch
from coreason_b2c.utils.logger import logger


class KeySetCacheProtocol(Protocol):
    """Protocol for a key set cache keyed by JWKS URL."""

    def get(self, url: str) -> JsonWebKeySet | None:
        """Returns the cached key set if present and not expired."""
        ...

    def set(self, url: str, key_set: JsonWebKeySet, ttl: float) -> None:
        """Caches the key set for `ttl` seconds."""
        ...

    def age(self, url: str) -> float | None:
        """Seconds since the key set was stored, or None if nothing is cached."""
        ...

    def invalidate(self, url: str) -> None:
        """Drops the cached key set."""
        ...


class MemoryKeySetCache:
    """
    In-memory implementation of KeySetCacheProtocol.
    Share one instance between clients to share fetched keys. Not suitable for distributed systems.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[JsonWebKeySet, float, float]] = {}

    def get(self, url: str) -> JsonWebKeySet | None:
        entry = self._entries.get(url)
        if entry is None:
            return None
        key_set, stored_at, ttl = entry
        if time.monotonic() - stored_at >= ttl:
            return None
        return key_set

    def set(self, url: str, key_set: JsonWebKeySet, ttl: float) -> None:
        self._entries[url] = (key_set, time.monotonic(), ttl)

    def age(self, url: str) -> float | None:
        entry = self._entries.get(url)
        return None if entry is None else time.monotonic() - entry[1]

    def invalidate(self, url: str) -> None:
        self._entries.pop(url, None)


class KeySetClient:
    """
    Fetches and caches the provider's JWKS.

    Attributes:
        jwks_url (str): The JWKS URL (…/discovery/v2.0/keys/).
        cache_ttl (int): The cache time-to-live in seconds. 0 fetches on every verification.
        refresh_cooldown (float): Minimum seconds between refreshes forced by unknown key ids.
    """

    def __init__(
        self,
        jwks_url: str,
        client: httpx.AsyncClient,
        cache: KeySetCacheProtocol | None = None,
        cache_ttl: int = 300,
        refresh_cooldown: float = 30.0,
    ) -> None:
        """
        Initialize the KeySetClient.

        Args:
            jwks_url: The JWKS URL.
            client: The async HTTP client to use for requests.
            cache: Key set cache. Defaults to a private MemoryKeySetCache.
            cache_ttl: Time-to-live for cached key sets in seconds. Defaults to 300.
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
        """
        self.jwks_url = jwks_url
        self.client = client
        self.cache = cache if cache is not None else MemoryKeySetCache()
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self._lock: anyio.Lock | None = None

    async def _fetch_key_set(self) -> JsonWebKeySet:
        """
        Fetches the JWKS document. No retries.

        Raises:
            KeySetFetchError: If the endpoint answers with an error status or the body is not a key set.
            NetworkError: On timeouts and connection failures.
        """
        try:
            data = await safe_json_fetch(self.client, self.jwks_url)
            return JsonWebKeySet.model_validate(data)
        except httpx.HTTPStatusError as e:
            raise KeySetFetchError(
                f"Failed to fetch JWKS from {self.jwks_url}: HTTP {e.response.status_code}"
            ) from e
        except (ValueError, ValidationError) as e:
            raise KeySetFetchError(f"Invalid JWKS document from {self.jwks_url}: {e}") from e

    async def get_key_set(self, force_refresh: bool = False) -> JsonWebKeySet:
        """
        Returns the key set, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache unless the last fetch is inside the cooldown.

        Raises:
            KeySetFetchError / NetworkError: If fetching fails.
        """
        if self._lock is None:
            self._lock = anyio.Lock()

        if not force_refresh:
            cached = self.cache.get(self.jwks_url)
            if cached is not None:
                return cached

        async with self._lock:
            # Double check inside the lock
            cached = self.cache.get(self.jwks_url)
            age = self.cache.age(self.jwks_url)
            if cached is not None:
                if not force_refresh:
                    return cached
                if age is not None and age < self.refresh_cooldown:
                    logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
                    return cached

            key_set = await self._fetch_key_set()
            if self.cache_ttl > 0:
                self.cache.set(self.jwks_url, key_set, self.cache_ttl)
            logger.debug(f"Fetched {len(key_set.keys)} signing keys from {self.jwks_url}")
            return key_set

    async def get_key(self, kid: str) -> JwkKey:
        """
        Returns the signing key for `kid`. With caching enabled, an unknown kid
        triggers one forced refresh to pick up rotated keys.

        Raises:
            UnknownKeyError: If no key matches after the refresh.
            KeySetFetchError / NetworkError: If fetching fails.
        """
        key = (await self.get_key_set()).find(kid)
        if key is None and self.cache_ttl > 0:
            logger.info(f"Signing key {kid} not in cached key set, refreshing JWKS")
            key = (await self.get_key_set(force_refresh=True)).find(kid)

        if key is None:
            raise UnknownKeyError(f"No signing key with kid '{kid}' in {self.jwks_url}")
        return key
