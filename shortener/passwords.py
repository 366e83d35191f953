"""Credential verifier: salted bcrypt hashing with a process-wide cost factor."""

import bcrypt

from shortener.errors import ValidationError

__all__ = ["PasswordHasher"]

# bcrypt only looks at the first 72 bytes; refuse longer secrets instead of truncating
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> str:
        encoded = password.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("ascii")

    def verify(self, password: str, password_hash: str) -> bool:
        """Compare in constant time. Malformed hashes count as a mismatch."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
        except ValueError:
            return False
