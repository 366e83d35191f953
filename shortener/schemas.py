"""Pydantic schemas for the link service's request/response contracts.

This module defines the service-level DTOs, the cache projection payload and
the HTTP-only response shapes.

Schema Hierarchy
=================
::
    CreateLinkRequest (Input)
    ├─ long_url: str
    ├─ alias: str | None          "" means no alias
    ├─ password: str | None
    ├─ expires_at: datetime | None
    └─ max_clicks: int | None

    CreateLinkResponse (Output)
    ├─ code: str
    ├─ short_url: str
    └─ metadata: LinkMetadata {has_password, expires_at, max_clicks}

    UpdateLinkRequest (Input, partial)
    └─ any subset of long_url, password, expires_at, max_clicks

    CachedLink (Redis payload)
    └─ long_url, has_password, expires_at, max_clicks

Key Behaviours
===============
- Naive datetimes are read as UTC.
- URL and alias rules are enforced by the service, not here, so that
  direct service callers get the same ``ValidationError``.
- ``UpdateLinkRequest`` distinguishes "absent" from "explicit null" through
  ``model_fields_set``.
- ``CachedLink`` never has a password hash field.

Classes:
    CreateLinkRequest, CreateLinkResponse, LinkMetadata, UpdateLinkRequest,
    LinkResponse, CachedLink, HealthResponse.
"""

import datetime

from pydantic import BaseModel, Field, field_validator

from shortener.enums import HealthStatus
from shortener.models import Link, as_utc

__all__ = [
    "CachedLink",
    "CreateLinkRequest",
    "CreateLinkResponse",
    "HealthResponse",
    "LinkMetadata",
    "LinkResponse",
    "UpdateLinkRequest",
]


class CreateLinkRequest(BaseModel):
    long_url: str
    alias: str | None = None
    password: str | None = None
    expires_at: datetime.datetime | None = None
    max_clicks: int | None = Field(None, ge=1)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)


class LinkMetadata(BaseModel):
    has_password: bool
    expires_at: datetime.datetime | None = None
    max_clicks: int | None = None


class CreateLinkResponse(BaseModel):
    code: str
    short_url: str
    metadata: LinkMetadata


class UpdateLinkRequest(BaseModel):
    long_url: str | None = None
    password: str | None = None
    expires_at: datetime.datetime | None = None
    max_clicks: int | None = Field(None, ge=1)

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)


class LinkResponse(BaseModel):
    code: str
    short_url: str
    long_url: str
    has_password: bool
    expires_at: datetime.datetime | None = None
    max_clicks: int | None = None
    click_count: int
    created_at: datetime.datetime | None = None

    @classmethod
    def from_link(cls, link: Link, short_url_base: str) -> "LinkResponse":
        return cls(
            code=link.code,
            short_url=f"{short_url_base}{link.code}",
            long_url=link.long_url,
            has_password=link.has_password,
            expires_at=link.expires_at,
            max_clicks=link.max_clicks,
            click_count=link.click_count or 0,
            created_at=link.created_at,
        )


class CachedLink(BaseModel):
    """Redis projection of a link. An empty ``long_url`` marks a known-absent code."""

    long_url: str
    has_password: bool = False
    expires_at: datetime.datetime | None = None
    max_clicks: int | None = None

    @field_validator("expires_at")
    @classmethod
    def normalize_expires_at(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)

    @classmethod
    def negative(cls) -> "CachedLink":
        return cls(long_url="")

    @classmethod
    def from_link(cls, link: Link) -> "CachedLink":
        return cls(
            long_url=link.long_url,
            has_password=link.has_password,
            expires_at=link.expires_at,
            max_clicks=link.max_clicks,
        )

    @property
    def is_negative(self) -> bool:
        return self.long_url == ""


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
