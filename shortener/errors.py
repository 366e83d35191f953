"""Error taxonomy for link lifecycle operations.

Every business rejection raised by the service layer is a ``LinkServiceError``
subclass carrying the HTTP status it maps to. Storage and driver errors are
not wrapped; they propagate unchanged.

Hierarchy
=========
::
    LinkServiceError
    ├─ ValidationError      (400)  bad URL, blocked host, bad alias
    ├─ ConflictError        (409)  code/alias already taken
    ├─ NotFoundError        (404)  no row for the code
    ├─ AccessDeniedError    (403)  row exists, caller is not the owner
    └─ PreconditionError    (401)  owner-scoped call without a caller identity
"""

__all__ = [
    "AccessDeniedError",
    "ConflictError",
    "LinkServiceError",
    "NotFoundError",
    "PreconditionError",
    "ValidationError",
]


class LinkServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LinkServiceError):
    status_code = 400


class ConflictError(LinkServiceError):
    status_code = 409


class NotFoundError(LinkServiceError):
    status_code = 404


class AccessDeniedError(LinkServiceError):
    status_code = 403


class PreconditionError(LinkServiceError):
    status_code = 401
