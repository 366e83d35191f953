"""SQLAlchemy ORM models for the short link service.

This module defines the durable schema: a single ``links`` table keyed by the
short code, plus the sequence that feeds the code generator.

Data Model Layout
=================
::
    links table
    ├─ code (VARCHAR(50) PRIMARY KEY)      generated or caller alias
    ├─ long_url (TEXT NOT NULL)
    ├─ alias (VARCHAR(50) NULL)            set when code was caller-chosen
    ├─ password_hash (VARCHAR(255) NULL)   bcrypt hash, never cached
    ├─ expires_at (TIMESTAMPTZ NULL, INDEXED)
    ├─ max_clicks (INTEGER NULL)
    ├─ click_count (INTEGER DEFAULT 0)     lags the fast counter
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ owner_id (VARCHAR(255) NULL, INDEXED)

    link_code_seq (SEQUENCE START 1)

How to Use
===========
**Step 1 — Import**::
    from shortener.models import Link

**Step 2 — Build a link**::
    link = Link(code="abc123", long_url="https://example.com", click_count=0,
                created_at=utcnow(), owner_id="user-1")

**Step 3 — Ask about it**::
    link.has_password

Key Behaviours
===============
- The alias is the code; there is no second unique column for it.
- Links rebuilt from the cache carry no hash, so ``has_password`` falls back
  to the projection's flag stored in ``cached_has_password``.
- All timestamps are timezone-aware UTC.

Classes:
    Link:  Represents a short link with its gating and expiry settings.
"""

import datetime

from sqlalchemy import DateTime, Integer, Sequence, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortener.config import get_settings
from shortener.database import Base

__all__ = ["Link", "as_utc", "link_code_seq", "utcnow"]

settings = get_settings()

link_code_seq = Sequence(settings.LINK_CODE_SEQUENCE, start=1, metadata=Base.metadata)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class Link(Base):
    __tablename__ = "links"

    code: Mapped[str] = mapped_column(String(50), primary_key=True)
    long_url: Mapped[str] = mapped_column(Text, nullable=False)
    alias: Mapped[str | None] = mapped_column(String(50), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    max_clicks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    click_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    owner_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Not mapped: only set on links rebuilt from the cache projection
    cached_has_password = False

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None or self.cached_has_password

    def __repr__(self) -> str:
        return f"<Link(code='{self.code}', click_count={self.click_count}, owner_id={self.owner_id!r})>"
