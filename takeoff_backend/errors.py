"""
Error taxonomy shared by the workflow, the auth gate and the HTTP layer.

Each error carries the HTTP status it maps to; the app renders them as
``{"error": message}``.
"""

from __future__ import annotations


class TakeoffError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TakeoffError):
    """Missing or malformed input."""

    status_code = 400


class PayloadTooLargeError(ValidationError):
    status_code = 413


class AuthError(TakeoffError):
    """Bad credentials or a missing, expired or invalid token."""

    status_code = 401


class NotFoundError(TakeoffError):
    """Resource is absent or owned by someone else; callers cannot tell which."""

    status_code = 404


class StorageError(TakeoffError):
    """Relational store or blob store failure."""

    status_code = 500
