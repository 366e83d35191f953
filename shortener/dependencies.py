"""Dependency injection with a shared service manager.

This module wires the shared backends (repository, cache, code generator,
password hasher, validation rules, logger) once at startup and hands each
request a lightweight context with its own correlation ids.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request

from shortener.cache import LinkCache, RedisLinkCache
from shortener.config import Settings, get_settings
from shortener.database import async_session
from shortener.generator import CodeGenerator, PostgresSequence
from shortener.link_service import LinkService
from shortener.models import link_code_seq
from shortener.passwords import PasswordHasher
from shortener.redis import get_redis
from shortener.repository import LinkRepository, SQLAlchemyLinkRepository
from shortener.validation import ValidationRules

__all__ = [
    "RequestContext",
    "ServiceManager",
    "get_link_service",
    "get_request_context",
    "get_service_manager",
]


# ============================================================================
# SHARED SERVICE MANAGER
# ============================================================================


class _RequestFieldsDefault(logging.Filter):
    """Give records logged outside a request the fields the format expects."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


class ServiceManager:
    """Holder for resources that live as long as the process.

    Nothing here is created per request, which keeps per-request overhead to
    building a ``RequestContext`` and a ``LinkService`` around it.
    """

    def __init__(self) -> None:
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        settings = get_settings()
        redis_client = await get_redis()
        self.configure(
            settings=settings,
            repository=SQLAlchemyLinkRepository(async_session),
            cache=RedisLinkCache(redis_client),
            code_generator=CodeGenerator(PostgresSequence(async_session, link_code_seq)),
        )

    def configure(
        self,
        settings: Settings,
        repository: LinkRepository,
        cache: LinkCache,
        code_generator: CodeGenerator,
    ) -> "ServiceManager":
        """Install backends directly; used by ``initialize`` and by tests."""
        self.settings = settings
        self.logger = self._setup_logger(settings)
        self.repository = repository
        self.cache = cache
        self.code_generator = code_generator
        self.hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
        self.rules = ValidationRules.from_settings(settings)
        self._initialized = True
        return self

    @staticmethod
    def _setup_logger(settings: Settings) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
            )
            handler.setFormatter(formatter)
            handler.addFilter(_RequestFieldsDefault())
            logger.addHandler(handler)
        logger.setLevel(settings.LOG_LEVEL.upper())
        return logger

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def cleanup(self) -> None:
        """Forget shared resources at shutdown; connections are closed by their owners."""
        self._initialized = False


# Process-wide instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request view over the shared resources.

    Attributes:
        service_manager: Shared backends and configuration
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def repository(self) -> LinkRepository:
        return self.service_manager.repository

    @property
    def cache(self) -> LinkCache:
        return self.service_manager.cache

    @property
    def code_generator(self) -> CodeGenerator:
        return self.service_manager.code_generator

    @property
    def hasher(self) -> PasswordHasher:
        return self.service_manager.hasher

    @property
    def rules(self) -> ValidationRules:
        return self.service_manager.rules

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with this request's correlation fields attached."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = request.client.host if request.client else None
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)
