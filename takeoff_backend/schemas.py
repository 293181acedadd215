"""
Pydantic schemas for the takeoff FastAPI backend.

Wire format is camelCase to match the browser client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from takeoff_backend.security import MAX_PASSWORD_BYTES


class CredentialsPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseModel):
    id: str
    email: str


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class PdfResponse(BaseModel):
    id: str
    projectId: str
    name: str
    fileUrl: str
    fileSize: int
    level: str = ""
    createdAt: datetime


class ProjectResponse(BaseModel):
    id: str
    userId: str
    name: str
    data: dict[str, Any]
    createdAt: datetime
    updatedAt: datetime
    pdfs: list[PdfResponse] = Field(default_factory=list)


class ProjectUpdatePayload(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    data: Optional[dict[str, Any]] = None


class PdfUpdatePayload(BaseModel):
    level: str = Field(..., max_length=255)


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
