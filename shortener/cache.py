"""Best-effort link cache: a projection of each link plus a fast click counter.

Nothing here is authoritative. The service decides TTLs and swallows every
error raised from these calls; the cache only has to be fast.

Key Layout
==========
::
    link:{code}    JSON CachedLink  {long_url, has_password, expires_at, max_clicks}
    clicks:{code}  integer          INCR on every redirect, SET NX from the stored count

Flow Diagram — get()
====================
::
    ┌─────────────┐
    │ GET link:x   │
    └──────┬──────┘
    FOUND? │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌──────────────┐
│ None    │  │ JSON valid?   │── no ──▶ log, None
└─────────┘  └──────┬───────┘
                    ▼ yes
               CachedLink

Classes:
    LinkCache:  Capability protocol consumed by the service.
    RedisLinkCache:  redis.asyncio implementation.
    InMemoryLinkCache:  Dict-backed implementation honouring TTLs.
"""

import datetime
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError

from shortener.schemas import CachedLink

__all__ = ["InMemoryLinkCache", "LinkCache", "RedisLinkCache", "click_key", "link_key"]

logger = logging.getLogger("shortener.cache")


def link_key(code: str) -> str:
    return f"link:{code}"


def click_key(code: str) -> str:
    return f"clicks:{code}"


def _seconds(ttl: datetime.timedelta) -> int:
    # Redis rejects a zero/negative EX on SET; round sub-second TTLs up
    return max(int(ttl.total_seconds()), 1)


class LinkCache(Protocol):
    async def get(self, code: str) -> CachedLink | None: ...

    async def set(self, code: str, link: CachedLink, ttl: datetime.timedelta) -> None: ...

    async def delete(self, code: str) -> None: ...

    async def increment_click(self, code: str, amount: int = 1) -> int: ...

    async def get_click_count(self, code: str) -> int: ...

    async def find_click_count(self, code: str) -> int | None: ...

    async def seed_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None: ...

    async def set_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None: ...

    async def expire_click_count(self, code: str, ttl: datetime.timedelta) -> None: ...

    async def ping(self) -> None: ...


class RedisLinkCache:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    async def get(self, code: str) -> CachedLink | None:
        raw = await self._client.get(link_key(code))
        if raw is None:
            return None
        try:
            return CachedLink.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning(f"Discarding corrupt cache entry for {code}: {exc.error_count()} errors")
            return None

    async def set(self, code: str, link: CachedLink, ttl: datetime.timedelta) -> None:
        await self._client.set(link_key(code), link.model_dump_json(), ex=_seconds(ttl))

    async def delete(self, code: str) -> None:
        await self._client.delete(link_key(code))

    async def increment_click(self, code: str, amount: int = 1) -> int:
        return int(await self._client.incr(click_key(code), amount))

    async def get_click_count(self, code: str) -> int:
        return await self.find_click_count(code) or 0

    async def find_click_count(self, code: str) -> int | None:
        value = await self._client.get(click_key(code))
        return int(value) if value is not None else None

    async def seed_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        key = click_key(code)
        if not await self._client.set(key, count, ex=_seconds(ttl), nx=True):
            await self._client.expire(key, _seconds(ttl))

    async def set_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        await self._client.set(click_key(code), count, ex=_seconds(ttl))

    async def expire_click_count(self, code: str, ttl: datetime.timedelta) -> None:
        # EXPIRE with a non-positive TTL deletes the key
        await self._client.expire(click_key(code), int(ttl.total_seconds()))

    async def ping(self) -> None:
        await self._client.ping()


class InMemoryLinkCache:
    """Process-local cache with the same semantics as the Redis one."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float | None]] = {}

    def _read(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if deadline is not None and self._clock() >= deadline:
            del self._entries[key]
            return None
        return value

    def _write(self, key: str, value: Any, ttl: datetime.timedelta | None) -> None:
        deadline = self._clock() + ttl.total_seconds() if ttl is not None else None
        self._entries[key] = (value, deadline)

    def ttl_of(self, key: str) -> float | None:
        entry = self._entries.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self._clock()

    async def get(self, code: str) -> CachedLink | None:
        raw = self._read(link_key(code))
        return CachedLink.model_validate_json(raw) if raw is not None else None

    async def set(self, code: str, link: CachedLink, ttl: datetime.timedelta) -> None:
        self._write(link_key(code), link.model_dump_json(), ttl)

    async def delete(self, code: str) -> None:
        self._entries.pop(link_key(code), None)

    async def increment_click(self, code: str, amount: int = 1) -> int:
        key = click_key(code)
        current = self._read(key) or 0
        deadline = self._entries[key][1] if key in self._entries else None
        self._entries[key] = (current + amount, deadline)
        return current + amount

    async def get_click_count(self, code: str) -> int:
        return self._read(click_key(code)) or 0

    async def find_click_count(self, code: str) -> int | None:
        return self._read(click_key(code))

    async def seed_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        current = self._read(click_key(code))
        self._write(click_key(code), count if current is None else current, ttl)

    async def set_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        self._write(click_key(code), count, ttl)

    async def expire_click_count(self, code: str, ttl: datetime.timedelta) -> None:
        key = click_key(code)
        current = self._read(key)
        if current is None:
            return
        if ttl.total_seconds() <= 0:
            del self._entries[key]
            return
        self._write(key, current, ttl)

    async def ping(self) -> None:
        return None

    def __contains__(self, code: str) -> bool:
        return self._read(link_key(code)) is not None
