"""Shared enums for the short link service.

This module defines all status and policy enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["CacheLookup", "ExistenceDisclosure", "HealthStatus", "LinkOperation", "RequestStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ACCESS_DENIED = "access_denied"
    PRECONDITION_FAILED = "precondition_failed"
    ERROR = "error"


class CacheLookup(StrEnum):
    """Outcome of a cache projection lookup."""

    HIT = "hit"
    MISS = "miss"
    NEGATIVE = "negative"


class LinkOperation(StrEnum):
    CREATE = "create"
    GET = "get"
    UPDATE = "update"
    DELETE = "delete"
    VERIFY_PASSWORD = "verify_password"
    INCREMENT_CLICK = "increment_click"


class ExistenceDisclosure(StrEnum):
    """What a non-owner learns when touching someone else's link.

    ``REVEAL`` answers with an access-denied error, which tells the caller the
    code exists. ``CONCEAL`` answers exactly as if the code did not exist.
    """

    REVEAL = "reveal"
    CONCEAL = "conceal"
