"""Cached, retried entity lookups (core domain)."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from core.config import CacheConfig, RetryConfig
from core.models import EntityInfo
from core.ports import PlatformPort
from core.retry import retry_with_config

LOGGER = logging.getLogger(__name__)

CHAT_KEY = "chat"
USER_KEY = "user"
CHANNEL_KEY = "channel"


def cache_key(kind: str, entity_id: int) -> str:
    """Namespace cache keys so a channel id never collides with a user id."""

    return f"{kind}:{entity_id}"


class LookupCache:
    """Lazily populated entity cache.

    Without a TTL entries live for the whole run. With ``ttl_seconds`` set an
    entry older than the TTL is treated as missing and looked up again.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, EntityInfo]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[EntityInfo]:
        item = self._entries.get(key)
        if item is None:
            return None
        stored_at, entity = item
        if self._ttl is not None and self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        return entity

    def put(self, key: str, entity: EntityInfo) -> None:
        self._entries[key] = (self._clock(), entity)


class EntityResolver:
    """Resolve chats, senders and the account itself through the cache.

    Every platform call is wrapped in the retry helper; failures that survive
    the retries propagate to the caller, which decides to skip the event.
    """

    def __init__(
        self,
        platform: PlatformPort,
        retry: RetryConfig = RetryConfig(),
        cache: Optional[LookupCache] = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._platform = platform
        self._retry = retry
        self._cache = cache if cache is not None else LookupCache()
        self._sleep = sleep
        self._me: Optional[EntityInfo] = None

    @classmethod
    def from_config(
        cls, platform: PlatformPort, retry: RetryConfig, cache_config: CacheConfig
    ) -> "EntityResolver":
        return cls(platform, retry, LookupCache(ttl_seconds=cache_config.lookup_ttl_seconds))

    @property
    def cache(self) -> LookupCache:
        return self._cache

    async def _cached(
        self, key: str, fetch: Callable[[], Awaitable[EntityInfo]]
    ) -> EntityInfo:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        entity = await retry_with_config(fetch, self._retry, sleep=self._sleep, label=f"lookup {key}")
        self._cache.put(key, entity)
        return entity

    async def chat(self, chat_id: int) -> EntityInfo:
        return await self._cached(
            cache_key(CHAT_KEY, chat_id), lambda: self._platform.get_chat(chat_id)
        )

    async def sender(self, sender_id: Optional[int], chat: EntityInfo, is_channel: bool) -> EntityInfo:
        """Return the author of a message.

        Channel posts have no real author, so the channel entity stands in for
        the sender and is cached under a channel-scoped key.
        """

        if is_channel or sender_id is None:
            key = cache_key(CHANNEL_KEY, chat.id)
            cached = self._cache.get(key)
            if cached is None:
                self._cache.put(key, chat)
                cached = chat
            return cached
        return await self._cached(
            cache_key(USER_KEY, sender_id), lambda: self._platform.get_sender(sender_id)
        )

    async def me(self) -> EntityInfo:
        if self._me is None:
            self._me = await retry_with_config(
                self._platform.get_self, self._retry, sleep=self._sleep, label="lookup self"
            )
        return self._me
