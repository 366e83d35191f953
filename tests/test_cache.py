"""Tests for the Redis and in-memory link cache adapters."""

import datetime
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from shortener.cache import InMemoryLinkCache, RedisLinkCache
from shortener.schemas import CachedLink

EXPIRES = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Mock Redis client."""
    redis_client = AsyncMock(spec=redis.Redis)
    redis_client.get = AsyncMock(return_value=None)
    redis_client.set = AsyncMock(return_value=True)
    redis_client.delete = AsyncMock(return_value=1)
    redis_client.incr = AsyncMock(return_value=1)
    redis_client.expire = AsyncMock(return_value=True)
    redis_client.ping = AsyncMock(return_value=True)
    return redis_client


class TestRedisLinkCache:
    @pytest.mark.asyncio
    async def test_get_miss_returns_none(self, mock_redis):
        assert await RedisLinkCache(mock_redis).get("abc") is None
        mock_redis.get.assert_awaited_once_with("link:abc")

    @pytest.mark.asyncio
    async def test_get_hit_parses_projection(self, mock_redis):
        mock_redis.get.return_value = (
            '{"long_url":"https://example.com","has_password":true,'
            '"expires_at":"2030-01-01T00:00:00Z","max_clicks":5}'
        )
        cached = await RedisLinkCache(mock_redis).get("abc")
        assert cached == CachedLink(
            long_url="https://example.com", has_password=True, expires_at=EXPIRES, max_clicks=5
        )

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, mock_redis):
        mock_redis.get.return_value = "{not json"
        assert await RedisLinkCache(mock_redis).get("abc") is None

    @pytest.mark.asyncio
    async def test_set_uses_ttl_seconds(self, mock_redis):
        link = CachedLink(long_url="https://example.com")
        await RedisLinkCache(mock_redis).set("abc", link, datetime.timedelta(minutes=5))
        mock_redis.set.assert_awaited_once_with("link:abc", link.model_dump_json(), ex=300)

    @pytest.mark.asyncio
    async def test_set_rounds_sub_second_ttl_up(self, mock_redis):
        await RedisLinkCache(mock_redis).set(
            "abc", CachedLink(long_url="https://example.com"), datetime.timedelta(milliseconds=200)
        )
        assert mock_redis.set.await_args.kwargs["ex"] == 1

    @pytest.mark.asyncio
    async def test_projection_never_contains_hash_field(self, mock_redis):
        await RedisLinkCache(mock_redis).set(
            "abc", CachedLink(long_url="https://example.com", has_password=True), datetime.timedelta(hours=1)
        )
        payload = mock_redis.set.await_args.args[1]
        assert "password_hash" not in payload
        assert '"has_password":true' in payload

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis):
        await RedisLinkCache(mock_redis).delete("abc")
        mock_redis.delete.assert_awaited_once_with("link:abc")

    @pytest.mark.asyncio
    async def test_click_counter_operations(self, mock_redis):
        cache = RedisLinkCache(mock_redis)
        mock_redis.incr.return_value = 7
        assert await cache.increment_click("abc") == 7
        mock_redis.incr.assert_awaited_once_with("clicks:abc", 1)

        mock_redis.get.return_value = "7"
        assert await cache.get_click_count("abc") == 7

        await cache.set_click_count("abc", 0, datetime.timedelta(days=1))
        mock_redis.set.assert_awaited_with("clicks:abc", 0, ex=86400)

        await cache.expire_click_count("abc", datetime.timedelta(0))
        mock_redis.expire.assert_awaited_once_with("clicks:abc", 0)

    @pytest.mark.asyncio
    async def test_find_click_count_distinguishes_missing(self, mock_redis):
        cache = RedisLinkCache(mock_redis)
        assert await cache.find_click_count("abc") is None

        mock_redis.get.return_value = "0"
        assert await cache.find_click_count("abc") == 0

    @pytest.mark.asyncio
    async def test_seed_sets_only_when_missing(self, mock_redis):
        cache = RedisLinkCache(mock_redis)
        await cache.seed_click_count("abc", 10, datetime.timedelta(days=1))
        mock_redis.set.assert_awaited_once_with("clicks:abc", 10, ex=86400, nx=True)
        mock_redis.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_seed_refreshes_ttl_of_existing_counter(self, mock_redis):
        mock_redis.set.return_value = None
        await RedisLinkCache(mock_redis).seed_click_count("abc", 10, datetime.timedelta(days=1))
        mock_redis.expire.assert_awaited_once_with("clicks:abc", 86400)

    @pytest.mark.asyncio
    async def test_missing_click_counter_reads_as_zero(self, mock_redis):
        assert await RedisLinkCache(mock_redis).get_click_count("abc") == 0

    @pytest.mark.asyncio
    async def test_errors_propagate_to_caller(self, mock_redis):
        mock_redis.get.side_effect = redis.ConnectionError("down")
        with pytest.raises(redis.ConnectionError):
            await RedisLinkCache(mock_redis).get("abc")


class TestInMemoryLinkCache:
    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        await cache.set("abc", CachedLink(long_url="https://example.com"), datetime.timedelta(seconds=10))
        assert await cache.get("abc") is not None

        clock.advance(10)
        assert await cache.get("abc") is None

    @pytest.mark.asyncio
    async def test_counter_keeps_ttl_across_increments(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        await cache.set_click_count("abc", 0, datetime.timedelta(seconds=60))
        assert await cache.increment_click("abc") == 1
        assert await cache.increment_click("abc") == 2

        clock.advance(61)
        assert await cache.get_click_count("abc") == 0
        assert await cache.increment_click("abc") == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_expire_removes_counter(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        await cache.increment_click("abc")
        await cache.expire_click_count("abc", datetime.timedelta(0))
        assert await cache.get_click_count("abc") == 0

    @pytest.mark.asyncio
    async def test_seed_keeps_live_value_and_extends_ttl(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        await cache.set_click_count("abc", 7, datetime.timedelta(seconds=60))

        await cache.seed_click_count("abc", 3, datetime.timedelta(seconds=600))

        assert await cache.find_click_count("abc") == 7
        assert cache.ttl_of("clicks:abc") == pytest.approx(600)

    @pytest.mark.asyncio
    async def test_seed_creates_missing_counter(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        assert await cache.find_click_count("abc") is None

        await cache.seed_click_count("abc", 3, datetime.timedelta(seconds=600))

        assert await cache.find_click_count("abc") == 3

    @pytest.mark.asyncio
    async def test_increment_by_amount(self, clock):
        cache = InMemoryLinkCache(clock=clock)
        assert await cache.increment_click("abc") == 1
        assert await cache.increment_click("abc", 10) == 11
