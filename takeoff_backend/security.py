"""
Password hashing and signed session tokens.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from takeoff_backend.errors import AuthError, ValidationError

REQUIRED_CLAIMS = ("userId", "email")

# bcrypt only looks at the first 72 bytes; bcrypt 5 rejects anything longer.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """bcrypt with a per-call random salt and a fixed work factor."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Malformed stored hash.
            return False


class TokenService:
    """
    Issues and verifies HS256 JWTs carrying ``userId`` and ``email``.

    The secret is required up front so a misconfigured process fails at
    startup rather than on the first login.
    """

    def __init__(
        self,
        secret: Optional[str],
        *,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise RuntimeError("JWT_SECRET is required to sign session tokens")
        self._secret = secret
        self.algorithm = algorithm
        self.default_ttl = default_ttl

    def issue(self, claims: dict[str, Any], ttl: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + (ttl if ttl is not None else self.default_ttl)
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token")
        if any(not payload.get(name) for name in REQUIRED_CLAIMS):
            raise AuthError("Invalid token payload")
        return payload


def peek_claims(token: str) -> dict[str, Any]:
    """
    Decode a token without checking its signature.

    Only for reading expiry on the client side; never use the result to
    authorize anything.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return {}
