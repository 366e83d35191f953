"""Shared pytest fixtures: in-memory backends, a wired service, and an API client."""

import datetime
import time
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from redis.exceptions import ConnectionError as RedisConnectionError

from shortener.cache import InMemoryLinkCache
from shortener.config import Settings, get_settings
from shortener.dependencies import ServiceManager, get_service_manager
from shortener.generator import CodeGenerator, InMemorySequence
from shortener.link_service import LinkService
from shortener.main import app
from shortener.passwords import PasswordHasher
from shortener.repository import InMemoryLinkRepository
from shortener.schemas import CachedLink
from shortener.validation import ValidationRules

TEST_SECRET = "test-secret-key"


class FakeClock:
    """Monotonic clock the tests can move forward."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingCache:
    """Cache whose every call fails the way a dead Redis does."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def _fail(self, name: str):
        self.calls.append(name)
        raise RedisConnectionError("Connection refused")

    async def get(self, code: str) -> CachedLink | None:
        self._fail("get")

    async def set(self, code: str, link: CachedLink, ttl: datetime.timedelta) -> None:
        self._fail("set")

    async def delete(self, code: str) -> None:
        self._fail("delete")

    async def increment_click(self, code: str, amount: int = 1) -> int:
        self._fail("increment_click")

    async def get_click_count(self, code: str) -> int:
        self._fail("get_click_count")

    async def find_click_count(self, code: str) -> int | None:
        self._fail("find_click_count")

    async def seed_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        self._fail("seed_click_count")

    async def set_click_count(self, code: str, count: int, ttl: datetime.timedelta) -> None:
        self._fail("set_click_count")

    async def expire_click_count(self, code: str, ttl: datetime.timedelta) -> None:
        self._fail("expire_click_count")

    async def ping(self) -> None:
        self._fail("ping")


@pytest.fixture
def settings() -> Settings:
    return Settings(BCRYPT_ROUNDS=4, JWT_SECRET_KEY=TEST_SECRET, LOG_LEVEL="DEBUG")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryLinkRepository:
    return InMemoryLinkRepository()


@pytest.fixture
def cache(clock: FakeClock) -> InMemoryLinkCache:
    return InMemoryLinkCache(clock=clock)


@pytest.fixture
def failing_cache() -> FailingCache:
    return FailingCache()


@pytest.fixture
def code_generator() -> CodeGenerator:
    return CodeGenerator(InMemorySequence(start=1))


@pytest.fixture
def make_service(repository, cache, code_generator, settings) -> Callable[..., LinkService]:
    def factory(**overrides) -> LinkService:
        service_settings = settings.model_copy(update=overrides.pop("settings", {}))
        return LinkService(
            repository=overrides.pop("repository", repository),
            cache=overrides.pop("cache", cache),
            code_generator=code_generator,
            hasher=PasswordHasher(rounds=service_settings.BCRYPT_ROUNDS),
            rules=ValidationRules.from_settings(service_settings),
            settings=service_settings,
        )

    return factory


@pytest.fixture
def service(make_service) -> LinkService:
    return make_service()


@pytest.fixture
def manager(repository, cache, code_generator, settings) -> ServiceManager:
    return ServiceManager().configure(
        settings=settings,
        repository=repository,
        cache=cache,
        code_generator=code_generator,
    )


@pytest.fixture
def make_token(settings: Settings) -> Callable[..., str]:
    def factory(sub: str = "user-alice-0001", scope: str = "links:read links:write", **claims) -> str:
        payload = {
            "sub": sub,
            "aud": settings.JWT_AUDIENCE,
            "scope": scope,
            "exp": int(time.time()) + 3600,
            **claims,
        }
        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    return factory


@pytest.fixture
def auth_headers(make_token) -> Callable[..., dict[str, str]]:
    def factory(sub: str = "user-alice-0001", scope: str = "links:read links:write") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(sub=sub, scope=scope)}"}

    return factory


@pytest_asyncio.fixture
async def client(manager: ServiceManager, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
