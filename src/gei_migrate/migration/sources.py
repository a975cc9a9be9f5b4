"""Idempotent migration source registration."""

import asyncio
from typing import Awaitable, Callable, Dict
from urllib.parse import urlsplit, urlunsplit

from loguru import logger

from ..state.store import MigrationStateStore


def canonical_org_url(url: str) -> str:
    """Normalize an origin organization URL for use as a cache key."""
    parts = urlsplit(url.strip())
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            parts.path.rstrip('/'),
            parts.query,
            '',
        )
    )


class MigrationSourceCache:
    """Maps origin organizations to provider migration sources.

    A source, once created, is a permanent alias for its origin URL. First
    registrations are single-flight per URL: concurrent callers for the same
    unseen origin wait on one lock and only the first calls ``create_fn``.
    """

    def __init__(self, store: MigrationStateStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self.logger = logger.bind(component='MigrationSourceCache')

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def ensure(
        self, origin_org_url: str, create_fn: Callable[[], Awaitable[str]]
    ) -> str:
        """Return the source id for an origin, creating it on first use.

        Args:
            origin_org_url: Origin organization URL
            create_fn: Coroutine function allocating a new source

        Returns:
            Migration source id
        """
        key = canonical_org_url(origin_org_url)

        cached = self.store.get_source_id(key)
        if cached:
            return cached

        async with self._lock_for(key):
            cached = self.store.get_source_id(key)
            if cached:
                return cached

            self.logger.info(f'No migration source for {key}; creating one')
            source_id = await create_fn()
            self.store.put_source_id(key, source_id)
            return source_id
