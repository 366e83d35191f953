"""Caller identity from bearer tokens, and signed password-verification cookies.

The token's ``sub`` claim is the caller identity handed to every
owner-scoped service call. Scopes come from the space separated ``scope``
claim.
"""

import hashlib
import hmac
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from shortener.config import Settings, get_settings

__all__ = [
    "CallerIdentity",
    "decode_access_token",
    "require_scopes",
    "sign_verification",
    "verification_cookie_name",
    "verify_verification",
]

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CallerIdentity:
    subject: str
    email: str | None = None
    scopes: frozenset[str] = frozenset()


def decode_access_token(token: str, settings: Settings) -> CallerIdentity:
    """Verify signature, audience and (if configured) issuer; raise ``JWTError`` otherwise."""
    claims = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
    )
    subject = claims.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return CallerIdentity(
        subject=str(subject),
        email=claims.get("email"),
        scopes=frozenset(str(claims.get("scope", "")).split()),
    )


def require_scopes(*required: str) -> Callable[..., Awaitable[CallerIdentity]]:
    async def dependency(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
        settings: Settings = Depends(get_settings),
    ) -> CallerIdentity:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing authorization header",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            identity = decode_access_token(credentials.credentials, settings)
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if not set(required) <= identity.scopes:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient scope")
        return identity

    return dependency


def verification_cookie_name(code: str) -> str:
    return f"verified_{code}"


def sign_verification(code: str, settings: Settings) -> str:
    return hmac.new(
        settings.JWT_SECRET_KEY.encode("utf-8"),
        f"verified:{code}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_verification(code: str, value: str | None, settings: Settings) -> bool:
    if not value:
        return False
    return hmac.compare_digest(value, sign_verification(code, settings))
