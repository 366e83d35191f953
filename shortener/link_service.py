"""Link Service Layer - lifecycle and cache-aside consistency.

This module is the only place that knows how the durable repository and the
derived cache relate. Every external request enters here.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                       LinkService                           │
    │  ┌───────────────┐ ┌───────────────┐ ┌───────────────────┐  │
    │  │ValidationRules│ │  AccessGuard   │ │  PasswordHasher   │  │
    │  └───────────────┘ └───────────────┘ └───────────────────┘  │
    │  ┌───────────────┐                                          │
    │  │ CodeGenerator │                                          │
    │  └───────────────┘                                          │
    └─────────────────────────────────────────────────────────────┘
                │                                    │
                ▼                                    ▼
    ┌─────────────────────┐              ┌─────────────────────┐
    │   LinkRepository    │              │     LinkCache       │
    │   (authoritative)   │              │  (derived, lossy)   │
    └─────────────────────┘              └─────────────────────┘

Request Flow Diagrams
=====================

Link Creation Flow
------------------
::
    validate URL ─▶ validate alias ─▶ require identity ─▶ hash password
         ─▶ code = alias or generate ─▶ BEGIN ─▶ exists? ─▶ INSERT ─▶ COMMIT
         ─▶ populate cache (best effort) ─▶ response

Link Lookup Flow (cache-aside)
------------------------------
::
    ┌─────────────┐
    │ cache.get    │
    └──────┬──────┘
    ┌──────┴───────────────┬───────────────────┐
    │ negative marker       │ projection         │ miss
    ▼                       ▼                    ▼
  None            expired? ─ yes ─▶ evict ──▶ repository.get_by_code
                    │ no                          │
                    ▼                      ┌──────┴──────┐
             link from projection          │ None         │ row
                                           ▼              ▼
                                   cache negative   cache at policy TTL
                                   (5 min), None    return row

Mutation Flow
-------------
::
    require identity ─▶ fetch row ─▶ 404? ─▶ owner? (403) ─▶ write ─▶ invalidate cache

Key Behaviours
==============
- Cache calls are attempted, logged on failure and never propagated.
- Ownership and password checks always read the repository.
- Cache invalidation for an update happens after the durable write.
- The fast counter takes every click; the durable column advances by the
  sync interval on every interval-th click, so it may lag by up to
  ``CLICK_SYNC_INTERVAL - 1``.
- Links returned by ``get_link`` carry ``max(durable, fast counter)`` as
  ``click_count``, which is what ``is_expired`` evaluates on every path.
- The fast counter is seeded from the durable column whenever the projection
  is written. A cache hit whose counter is gone is answered from the
  repository, and a counter recreated by a click resumes from the stored count.
- Each operation runs under ``OPERATION_TIMEOUT_SECONDS``; cancellation of
  the calling task propagates through every await.
"""

import asyncio
import datetime
import logging
import time
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

from prometheus_client import Counter, Histogram

from shortener.access import AccessGuard, mask_identity
from shortener.cache import LinkCache
from shortener.config import Settings
from shortener.enums import CacheLookup, LinkOperation, RequestStatus
from shortener.errors import (
    AccessDeniedError,
    ConflictError,
    LinkServiceError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from shortener.generator import CodeGenerator
from shortener.models import Link, as_utc, utcnow
from shortener.passwords import PasswordHasher
from shortener.repository import LinkRepository
from shortener.schemas import CachedLink, CreateLinkRequest, CreateLinkResponse, LinkMetadata, UpdateLinkRequest
from shortener.validation import ValidationRules

if TYPE_CHECKING:
    from shortener.dependencies import RequestContext

__all__ = ["LinkService"]

T = TypeVar("T")


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_OPERATIONS_TOTAL = Counter(
    "link_operations_total",
    "Total link service operations",
    ["operation", "status"],
)
LINK_OPERATION_DURATION = Histogram(
    "link_operation_duration_seconds",
    "Time taken by link service operations",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
LINK_CACHE_LOOKUPS_TOTAL = Counter(
    "link_cache_lookups_total",
    "Link cache lookups by outcome",
    ["result"],
)
LINK_CACHE_ERRORS_TOTAL = Counter(
    "link_cache_errors_total",
    "Cache operations that failed and were absorbed",
    ["operation"],
)
LINK_CLICK_SYNCS_TOTAL = Counter(
    "link_click_syncs_total",
    "Durable click counter synchronizations",
    ["status"],
)

_ERROR_STATUS: dict[type[LinkServiceError], RequestStatus] = {
    ValidationError: RequestStatus.VALIDATION_ERROR,
    ConflictError: RequestStatus.CONFLICT,
    NotFoundError: RequestStatus.NOT_FOUND,
    AccessDeniedError: RequestStatus.ACCESS_DENIED,
    PreconditionError: RequestStatus.PRECONDITION_FAILED,
}


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================


class LinkService:
    """Creates, reads, mutates and deletes links across repository and cache.

    Example:
        >>> service = LinkService.from_context(ctx)
        >>> response = await service.create_link(
        ...     CreateLinkRequest(long_url="https://example.com"), caller_identity="user-1"
        ... )
        >>> link = await service.get_link(response.code)
    """

    def __init__(
        self,
        repository: LinkRepository,
        cache: LinkCache,
        code_generator: CodeGenerator,
        hasher: PasswordHasher,
        rules: ValidationRules,
        settings: Settings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._code_generator = code_generator
        self._hasher = hasher
        self._rules = rules
        self._settings = settings
        self._guard = AccessGuard(settings.EXISTENCE_DISCLOSURE)
        self._logger = logger or logging.getLogger("shortener")

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "LinkService":
        """Build a service bound to one request's logger and the shared backends."""
        return cls(
            repository=ctx.repository,
            cache=ctx.cache,
            code_generator=ctx.code_generator,
            hasher=ctx.hasher,
            rules=ctx.rules,
            settings=ctx.settings,
            logger=ctx.logger,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(self, request: CreateLinkRequest, caller_identity: str | None) -> CreateLinkResponse:
        """Validate, persist and cache a new link owned by ``caller_identity``.

        Args:
            request: Destination and optional alias, password, expiry, click cap.
            caller_identity: Stable id of the authenticated caller.

        Returns:
            CreateLinkResponse: Code, short URL and public metadata.

        Raises:
            ValidationError: Bad or blocked URL, invalid or reserved alias.
            PreconditionError: No caller identity.
            ConflictError: The code is already taken.
        """
        async with self._observe(LinkOperation.CREATE):
            scheme = self._rules.validate_long_url(request.long_url)
            self._logger.debug(f"Destination URL accepted (scheme={scheme})")

            alias = self._rules.validate_alias(request.alias)
            owner_id = self._guard.require_identity(caller_identity)

            password_hash = await self._hash_password(request.password) if request.password else None
            code = alias or await self._code_generator.generate_code()

            link = Link(
                code=code,
                long_url=request.long_url,
                alias=alias,
                password_hash=password_hash,
                expires_at=request.expires_at,
                max_clicks=request.max_clicks,
                click_count=0,
                created_at=utcnow(),
                owner_id=owner_id,
            )

            async with self._repository.transaction() as tx:
                existing = await self._repository.get_by_code_within_transaction(tx, code)
                if existing is not None:
                    raise ConflictError(f"Code '{code}' already exists")
                await self._repository.create_within_transaction(tx, link)

            self._logger.info(f"Link created: {code} (owner={mask_identity(owner_id)})")

            await self._populate_cache(link)
            # A counter left behind by an earlier link with the same alias must not carry over
            await self._cache_call(
                "set_click_count",
                self._cache.set_click_count(code, 0, self._click_counter_ttl()),
            )

            return CreateLinkResponse(
                code=code,
                short_url=f"{self._settings.short_url_base}{code}",
                metadata=LinkMetadata(
                    has_password=password_hash is not None,
                    expires_at=link.expires_at,
                    max_clicks=link.max_clicks,
                ),
            )

    async def get_link(self, code: str) -> Link | None:
        """Cache-aside lookup. Returns ``None`` when the code does not exist.

        Links rebuilt from the cache never carry the password hash; use
        ``Link.has_password`` to know whether the link is gated.
        """
        async with self._observe(LinkOperation.GET):
            cached = await self._cache_call("get", self._cache.get(code))
            if cached is not None:
                if cached.is_negative:
                    LINK_CACHE_LOOKUPS_TOTAL.labels(result=CacheLookup.NEGATIVE).inc()
                    return None
                if cached.expires_at is not None and utcnow() > cached.expires_at:
                    self._logger.debug(f"Evicting expired cache entry for {code}")
                    await self._cache_call("delete", self._cache.delete(code))
                else:
                    fast = await self._cache_call("find_click_count", self._cache.find_click_count(code))
                    if fast is not None:
                        LINK_CACHE_LOOKUPS_TOTAL.labels(result=CacheLookup.HIT).inc()
                        link = self._link_from_projection(code, cached)
                        link.click_count = fast
                        return link
                    # Without the counter the projection cannot answer the click cap
                    self._logger.debug(f"Click counter missing for {code}, reading repository")

            LINK_CACHE_LOOKUPS_TOTAL.labels(result=CacheLookup.MISS).inc()
            link = await self._repository.get_by_code(code)
            if link is None:
                await self._cache_call(
                    "set",
                    self._cache.set(
                        code,
                        CachedLink.negative(),
                        datetime.timedelta(seconds=self._settings.CACHE_NEGATIVE_TTL_SECONDS),
                    ),
                )
                return None

            await self._populate_cache(link)
            link.click_count = await self._freshest_click_count(code, link.click_count)
            return link

    async def verify_password(self, code: str, password: str) -> bool:
        """Check ``password`` against the stored hash. Never consults the cache."""
        async with self._observe(LinkOperation.VERIFY_PASSWORD):
            link = await self._repository.get_by_code(code)
            if link is None or link.password_hash is None:
                self._logger.info(f"Password check for {code} failed: no password set")
                return False

            verified = await asyncio.to_thread(self._hasher.verify, password, link.password_hash)
            self._logger.info(f"Password check for {code}: {'ok' if verified else 'mismatch'}")
            return verified

    @staticmethod
    def is_expired(link: Link, now: datetime.datetime | None = None) -> bool:
        """True if past ``expires_at`` or the click cap has been reached."""
        now = now or utcnow()
        expires_at = as_utc(link.expires_at)
        if expires_at is not None and now > expires_at:
            return True
        if link.max_clicks is not None and (link.click_count or 0) >= link.max_clicks:
            return True
        return False

    async def increment_click_count(self, code: str) -> int | None:
        """Count one redirect. Returns the fast counter value, or ``None`` if the cache is down.

        Durable write failures on this path are logged and swallowed so a
        redirect never fails because of click accounting.
        """
        async with self._observe(LinkOperation.INCREMENT_CLICK):
            count = await self._cache_call("increment_click", self._cache.increment_click(code))
            if count is None:
                return None

            if count == 1:
                # A new counter may stand in for an evicted one; carry the stored clicks over
                durable = await self._durable_click_count(code)
                if durable:
                    restored = await self._cache_call(
                        "increment_click", self._cache.increment_click(code, durable)
                    )
                    if restored is not None:
                        count = restored
                await self._cache_call(
                    "expire_click_count",
                    self._cache.expire_click_count(code, self._click_counter_ttl()),
                )

            interval = self._settings.CLICK_SYNC_INTERVAL
            if count % interval == 0:
                try:
                    await self._repository.increment_click_count(code, interval)
                except Exception as exc:
                    LINK_CLICK_SYNCS_TOTAL.labels(status=RequestStatus.ERROR).inc()
                    self._logger.error(f"Click sync failed for {code} at {count}: {exc}")
                else:
                    LINK_CLICK_SYNCS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
                    self._logger.debug(f"Click count synced for {code} at {count}")

            return count

    async def update_link(self, code: str, request: UpdateLinkRequest, caller_identity: str | None) -> Link:
        """Apply the fields present in ``request`` to a link the caller owns.

        Raises:
            PreconditionError: No caller identity.
            NotFoundError: No such code.
            AccessDeniedError: Caller is not the owner.
            ValidationError: New destination rejected.
        """
        async with self._observe(LinkOperation.UPDATE):
            owner_id = self._guard.require_identity(caller_identity)
            link = await self._get_owned_link(code, owner_id)

            fields = request.model_fields_set
            if "long_url" in fields:
                if request.long_url is None:
                    raise ValidationError("long_url cannot be null")
                self._rules.validate_long_url(request.long_url)
                link.long_url = request.long_url
            if "password" in fields:
                link.password_hash = await self._hash_password(request.password) if request.password else None
            if "expires_at" in fields:
                link.expires_at = request.expires_at
            if "max_clicks" in fields:
                link.max_clicks = request.max_clicks

            await self._repository.update(link)
            await self._cache_call("delete", self._cache.delete(code))

            self._logger.info(f"Link updated: {code} fields={sorted(fields)}")
            return link

    async def delete_link(self, code: str, caller_identity: str | None) -> None:
        """Remove a link the caller owns, along with its cache projection and counter."""
        async with self._observe(LinkOperation.DELETE):
            owner_id = self._guard.require_identity(caller_identity)
            await self._get_owned_link(code, owner_id)

            await self._cache_call("delete", self._cache.delete(code))
            await self._repository.delete(code)
            # A concurrent reader may have repopulated the projection before the delete committed
            await self._cache_call("delete", self._cache.delete(code))
            await self._cache_call(
                "expire_click_count",
                self._cache.expire_click_count(code, datetime.timedelta(0)),
            )

            self._logger.info(f"Link deleted: {code}")

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    @asynccontextmanager
    async def _observe(self, operation: LinkOperation) -> AsyncIterator[None]:
        """Bound the operation in time and record its outcome."""
        start_time = time.perf_counter()
        status = RequestStatus.SUCCESS
        try:
            async with asyncio.timeout(self._settings.OPERATION_TIMEOUT_SECONDS):
                yield
        except LinkServiceError as exc:
            status = _ERROR_STATUS.get(type(exc), RequestStatus.ERROR)
            self._logger.warning(f"Link {operation} rejected: {exc}")
            raise
        except Exception as exc:
            status = RequestStatus.ERROR
            self._logger.error(f"Link {operation} error: {exc!r}")
            raise
        finally:
            LINK_OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start_time)
            LINK_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()

    async def _cache_call(self, operation: str, call: Awaitable[T]) -> T | None:
        """Await a cache call; on failure log it and return ``None``."""
        try:
            return await call
        except Exception as exc:
            LINK_CACHE_ERRORS_TOTAL.labels(operation=operation).inc()
            self._logger.warning(f"Cache {operation} failed: {exc!r}")
            return None

    async def _get_owned_link(self, code: str, owner_id: str) -> Link:
        link = await self._repository.get_by_code(code)
        if link is None:
            raise NotFoundError("Link not found")
        try:
            self._guard.ensure_owner(owner_id, link)
        except LinkServiceError:
            self._logger.info(f"Ownership check failed for {code} (caller={mask_identity(owner_id)})")
            raise
        return link

    async def _hash_password(self, password: str) -> str:
        # Runs off the event loop
        return await asyncio.to_thread(self._hasher.hash, password)

    async def _populate_cache(self, link: Link) -> None:
        ttl = self._policy_ttl(link)
        if ttl is None:
            return
        await self._cache_call("set", self._cache.set(link.code, CachedLink.from_link(link), ttl))
        await self._cache_call(
            "seed_click_count",
            self._cache.seed_click_count(link.code, link.click_count or 0, self._click_counter_ttl()),
        )

    def _policy_ttl(self, link: Link) -> datetime.timedelta | None:
        """``min(max TTL, time left)`` for expiring links, the default otherwise.

        Returns ``None`` for links that are already past ``expires_at``.
        """
        expires_at = as_utc(link.expires_at)
        if expires_at is None:
            return datetime.timedelta(seconds=self._settings.CACHE_DEFAULT_TTL_SECONDS)

        remaining = expires_at - utcnow()
        if remaining <= datetime.timedelta(0):
            return None
        return min(datetime.timedelta(seconds=self._settings.CACHE_MAX_TTL_SECONDS), remaining)

    def _click_counter_ttl(self) -> datetime.timedelta:
        return datetime.timedelta(seconds=self._settings.CLICK_COUNTER_TTL_SECONDS)

    async def _durable_click_count(self, code: str) -> int:
        try:
            link = await self._repository.get_by_code(code)
        except Exception as exc:
            self._logger.error(f"Reading stored clicks for {code} failed: {exc}")
            return 0
        if link is None:
            return 0
        return link.click_count or 0

    async def _freshest_click_count(self, code: str, durable: int | None) -> int:
        fast = await self._cache_call("get_click_count", self._cache.get_click_count(code))
        return max(durable or 0, fast or 0)

    @staticmethod
    def _link_from_projection(code: str, cached: CachedLink) -> Link:
        link = Link(
            code=code,
            long_url=cached.long_url,
            password_hash=None,
            expires_at=cached.expires_at,
            max_clicks=cached.max_clicks,
            click_count=0,
        )
        link.cached_has_password = cached.has_password
        return link
