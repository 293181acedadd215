"""
Configuration and settings for the takeoff backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# libpq sslmode values that still check the server certificate.
VERIFYING_SSL_MODES = ("verify-ca", "verify-full")


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    environment: Literal["development", "test", "production"] = Field(
        default="development"
    )
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"]
    )

    # Database (Postgres expected, any SQLAlchemy URL accepted)
    database_url: Optional[str] = Field(default=None)
    database_ssl_mode: Optional[str] = Field(default=None)
    database_ssl_root_cert: Optional[str] = Field(default=None)
    database_pool_size: int = Field(default=5, ge=1)
    database_max_overflow: int = Field(default=10, ge=0)
    database_pool_timeout: float = Field(default=30.0, gt=0)
    database_connect_timeout: int = Field(default=10, ge=1)
    database_statement_timeout_ms: int = Field(default=15000, ge=0)

    # S3-compatible storage for PDF drawings
    s3_bucket_name: Optional[str] = Field(default=None)
    aws_region: Optional[str] = Field(default=None)
    s3_endpoint_url: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)
    s3_connect_timeout: float = Field(default=5.0, gt=0)
    s3_read_timeout: float = Field(default=30.0, gt=0)
    s3_max_attempts: int = Field(default=3, ge=1)

    # Tokens and passwords
    jwt_secret: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=1)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Uploads
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @model_validator(mode="after")
    def check_database_tls(self) -> "Settings":
        if self.environment == "production" and self.is_postgres:
            mode = self.effective_ssl_mode
            if mode not in VERIFYING_SSL_MODES:
                raise ValueError(
                    f"database_ssl_mode={mode!r} skips certificate validation; "
                    f"production requires one of {VERIFYING_SSL_MODES}"
                )
        return self

    @property
    def is_postgres(self) -> bool:
        return bool(self.database_url) and self.database_url.startswith(
            ("postgres://", "postgresql://", "postgresql+")
        )

    @property
    def effective_ssl_mode(self) -> str:
        if self.database_ssl_mode:
            return self.database_ssl_mode
        return "verify-full" if self.environment == "production" else "disable"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
