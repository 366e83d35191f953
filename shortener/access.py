"""Access control guard for owner-scoped operations."""

from shortener.enums import ExistenceDisclosure
from shortener.errors import AccessDeniedError, NotFoundError, PreconditionError
from shortener.models import Link

__all__ = ["AccessGuard", "mask_identity"]


def mask_identity(identity: str | None) -> str:
    """Shorten an identity for logs: first and last three characters only."""
    if not identity or len(identity) < 8:
        return "***"
    return f"{identity[:3]}***{identity[-3:]}"


class AccessGuard:
    """Exact owner match; there is no anonymous or public grant."""

    def __init__(self, disclosure: ExistenceDisclosure = ExistenceDisclosure.REVEAL) -> None:
        self._disclosure = disclosure

    @staticmethod
    def require_identity(caller_identity: str | None) -> str:
        if not caller_identity:
            raise PreconditionError("Caller identity is required")
        return caller_identity

    @staticmethod
    def is_owner(caller_identity: str | None, link: Link) -> bool:
        return bool(caller_identity) and link.owner_id is not None and link.owner_id == caller_identity

    def ensure_owner(self, caller_identity: str | None, link: Link) -> None:
        if not self.is_owner(caller_identity, link):
            self.deny()

    def deny(self) -> None:
        if self._disclosure is ExistenceDisclosure.CONCEAL:
            raise NotFoundError("Link not found")
        raise AccessDeniedError("Access denied: not the owner of this link")
