"""Destination URL and alias validation.

The rules are plain data built once from settings and owned by the service
instance; nothing mutates them afterwards.

Flow Diagram — validate_long_url()
==================================
::
    ┌──────────────┐
    │ absolute URI? │── no ──▶ ValidationError
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ http / https? │── no ──▶ ValidationError
    └──────┬───────┘
           ▼
    ┌──────────────┐  IP literal: private, loopback, link-local,
    │ host allowed? │  multicast, unspecified ──▶ ValidationError
    └──────┬───────┘  name: contains localhost/127.0.0.1/0.0.0.0 ──▶ ValidationError
           ▼
    ┌──────────────┐
    │ no file:// or │── no ──▶ ValidationError
    │ javascript:   │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ RFC syntax    │── no ──▶ ValidationError
    │ (validators)  │
    └──────────────┘
"""

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import validators

from shortener.config import Settings
from shortener.errors import ValidationError

__all__ = ["ValidationRules"]


@dataclass(frozen=True)
class ValidationRules:
    reserved_aliases: frozenset[str]
    alias_pattern: re.Pattern[str]
    allowed_schemes: frozenset[str]
    blocked_host_markers: tuple[str, ...]
    blocked_url_markers: tuple[str, ...]

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidationRules":
        return cls(
            reserved_aliases=frozenset(alias.lower() for alias in settings.RESERVED_ALIASES),
            alias_pattern=re.compile(settings.ALIAS_PATTERN),
            allowed_schemes=frozenset(settings.ALLOWED_URL_SCHEMES),
            blocked_host_markers=tuple(marker.lower() for marker in settings.BLOCKED_HOST_MARKERS),
            blocked_url_markers=tuple(marker.lower() for marker in settings.BLOCKED_URL_MARKERS),
        )

    def validate_long_url(self, long_url: str) -> str:
        """Return the scheme of an acceptable destination, raise otherwise."""
        try:
            parts = urlsplit(long_url)
            host = parts.hostname
        except ValueError as exc:
            raise ValidationError("Invalid URL") from exc

        if not parts.scheme or not parts.netloc or not host:
            raise ValidationError("Invalid URL")

        if parts.scheme not in self.allowed_schemes:
            raise ValidationError("Invalid URL scheme: only http and https allowed")

        self._check_host(host)

        lowered = long_url.lower()
        if any(marker in lowered for marker in self.blocked_url_markers):
            raise ValidationError("Invalid URL: disallowed protocol or scheme")

        if not validators.url(long_url, strict_query=False):
            raise ValidationError("Invalid URL")

        return parts.scheme

    def _check_host(self, host: str) -> None:
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            ip = None

        if ip is None:
            if any(marker in host.lower() for marker in self.blocked_host_markers):
                raise ValidationError("Invalid URL: localhost or zero address not allowed")
            return

        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        if ip.is_private or ip.is_loopback or ip.is_link_local:
            raise ValidationError("Invalid URL: private, loopback, or link-local addresses not allowed")
        if ip.is_multicast or ip.is_unspecified:
            raise ValidationError("Invalid URL: multicast or unspecified address")

    def validate_alias(self, alias: str | None) -> str | None:
        """Return the alias to use as the code, or ``None`` when none was requested."""
        if alias is None or alias == "":
            return None
        if alias.lower() in self.reserved_aliases:
            raise ValidationError(f"Alias '{alias}' is reserved")
        if not self.alias_pattern.fullmatch(alias):
            raise ValidationError("Invalid alias: use 1-50 letters, digits, '_' or '-'")
        return alias
