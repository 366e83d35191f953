"""Gated short links: a URL shortener with password gating, expiry and owner-scoped edits."""

__version__ = "1.0.0"
