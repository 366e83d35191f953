"""Durable CRUD over links.

The repository is the authoritative store. "Not found" is a ``None`` return,
never an exception. Creation composes with an existence check inside one
transaction; the primary key on ``code`` is what finally linearizes two
concurrent creates of the same alias.

Transaction Flow — create path
==============================
::
    async with repository.transaction() as tx:
        ┌──────────────────────────────┐
        │ get_by_code_within_transaction│──▶ row? ──▶ ConflictError (rollback)
        └──────────────┬───────────────┘
                       ▼
        ┌──────────────────────────────┐
        │ create_within_transaction     │──▶ PK clash? ──▶ ConflictError (rollback)
        └──────────────┬───────────────┘
                       ▼
                    commit

Key Behaviours
===============
- ``update`` overwrites only the mutable fields (long_url, password_hash,
  expires_at, max_clicks); it never touches ``click_count``.
- ``delete`` of a missing code is a no-op.
- ``increment_click_count`` is relative and therefore safe to repeat from
  several workers.

Classes:
    LinkRepository:  Capability protocol consumed by the service.
    SQLAlchemyLinkRepository:  PostgreSQL implementation.
    InMemoryLinkRepository:  Dict-backed implementation for tests.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortener.errors import ConflictError
from shortener.models import Link

__all__ = ["InMemoryLinkRepository", "LinkRepository", "SQLAlchemyLinkRepository"]

_COLUMNS = (
    "code",
    "long_url",
    "alias",
    "password_hash",
    "expires_at",
    "max_clicks",
    "click_count",
    "created_at",
    "owner_id",
)


class LinkRepository(Protocol):
    def transaction(self) -> Any:
        """Async context manager yielding a transaction handle."""
        ...

    async def create(self, link: Link) -> None: ...

    async def create_within_transaction(self, tx: Any, link: Link) -> None: ...

    async def get_by_code(self, code: str) -> Link | None: ...

    async def get_by_code_within_transaction(self, tx: Any, code: str) -> Link | None: ...

    async def update(self, link: Link) -> None: ...

    async def delete(self, code: str) -> None: ...

    async def increment_click_count(self, code: str, amount: int = 1) -> None: ...

    async def ping(self) -> None: ...


class SQLAlchemyLinkRepository:
    """PostgreSQL-backed repository; each call borrows one pooled session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def create(self, link: Link) -> None:
        async with self.transaction() as session:
            await self.create_within_transaction(session, link)

    async def create_within_transaction(self, tx: AsyncSession, link: Link) -> None:
        tx.add(link)
        try:
            await tx.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Code '{link.code}' already exists") from exc

    async def get_by_code(self, code: str) -> Link | None:
        async with self._session_factory() as session:
            return await self.get_by_code_within_transaction(session, code)

    async def get_by_code_within_transaction(self, tx: AsyncSession, code: str) -> Link | None:
        result = await tx.execute(select(Link).where(Link.code == code))
        return result.scalar_one_or_none()

    async def update(self, link: Link) -> None:
        async with self.transaction() as session:
            await session.execute(
                update(Link)
                .where(Link.code == link.code)
                .values(
                    long_url=link.long_url,
                    password_hash=link.password_hash,
                    expires_at=link.expires_at,
                    max_clicks=link.max_clicks,
                )
            )

    async def delete(self, code: str) -> None:
        async with self.transaction() as session:
            await session.execute(delete(Link).where(Link.code == code))

    async def increment_click_count(self, code: str, amount: int = 1) -> None:
        async with self.transaction() as session:
            await session.execute(
                update(Link).where(Link.code == code).values(click_count=Link.click_count + amount)
            )

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))


class _InMemoryTransaction:
    def __init__(self) -> None:
        self.staged: dict[str, dict[str, Any]] = {}


class InMemoryLinkRepository:
    """Dict-backed repository.

    Rows are stored as plain column dicts and every read returns a fresh
    ``Link``, so callers can never mutate stored state by accident. A single
    lock serializes transactions, which gives the same check-then-insert
    atomicity the database provides.
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _to_row(link: Link) -> dict[str, Any]:
        return {column: getattr(link, column) for column in _COLUMNS}

    @staticmethod
    def _to_link(row: dict[str, Any]) -> Link:
        return Link(**row)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_InMemoryTransaction]:
        async with self._lock:
            tx = _InMemoryTransaction()
            yield tx
            self._rows.update(tx.staged)

    async def create(self, link: Link) -> None:
        async with self.transaction() as tx:
            await self.create_within_transaction(tx, link)

    async def create_within_transaction(self, tx: _InMemoryTransaction, link: Link) -> None:
        await asyncio.sleep(0)
        if link.code in self._rows or link.code in tx.staged:
            raise ConflictError(f"Code '{link.code}' already exists")
        tx.staged[link.code] = self._to_row(link)

    async def get_by_code(self, code: str) -> Link | None:
        await asyncio.sleep(0)
        row = self._rows.get(code)
        return self._to_link(row) if row is not None else None

    async def get_by_code_within_transaction(self, tx: _InMemoryTransaction, code: str) -> Link | None:
        await asyncio.sleep(0)
        row = tx.staged.get(code) or self._rows.get(code)
        return self._to_link(row) if row is not None else None

    async def update(self, link: Link) -> None:
        async with self._lock:
            row = self._rows.get(link.code)
            if row is None:
                return
            row.update(
                long_url=link.long_url,
                password_hash=link.password_hash,
                expires_at=link.expires_at,
                max_clicks=link.max_clicks,
            )

    async def delete(self, code: str) -> None:
        async with self._lock:
            self._rows.pop(code, None)

    async def increment_click_count(self, code: str, amount: int = 1) -> None:
        async with self._lock:
            row = self._rows.get(code)
            if row is not None:
                row["click_count"] = (row["click_count"] or 0) + amount

    async def ping(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._rows)
