"""
Registration, login and the bearer-token gate for protected routes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from takeoff_backend.db import Database, UserRecord
from takeoff_backend.dependencies import get_token_service
from takeoff_backend.errors import AuthError
from takeoff_backend.security import PasswordHasher, TokenService

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through our AuthError handler.
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, db: Database, hasher: PasswordHasher, tokens: TokenService):
        self.db = db
        self.hasher = hasher
        self.tokens = tokens

    def _issue(self, user: UserRecord) -> str:
        return self.tokens.issue({"userId": user.id, "email": user.email})

    def register(self, email: str, password: str) -> tuple[str, UserRecord]:
        """Create a user and return a fresh token; duplicate emails are rejected."""
        user = self.db.create_user(normalize_email(email), self.hasher.hash(password))
        logger.info(f"Registered user {user.id}")
        return self._issue(user), user

    def login(self, email: str, password: str) -> tuple[str, UserRecord]:
        user = self.db.get_user_by_email(normalize_email(email))
        # Same error for unknown email and wrong password.
        if user is None or not self.hasher.verify(password, user.password_hash):
            raise AuthError("Invalid credentials")
        return self._issue(user), user


def require_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    """
    FastAPI dependency guarding every project and PDF route.

    Verifies the bearer token and attaches the caller's identity to
    ``request.state.identity``. Any failure stops the request with 401.
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Authentication required")
    claims = tokens.verify(credentials.credentials)
    identity = Identity(user_id=str(claims["userId"]), email=str(claims["email"]))
    request.state.identity = identity
    return identity
