"""
Dependency wiring for the FastAPI app.

Resources are built once per application by ``create_app`` and kept on
``app.state``; the getters below hand them to routes.
"""

from __future__ import annotations

import logging

from fastapi import Request

from takeoff_backend.config import Settings
from takeoff_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)


def build_storage_client(settings: Settings) -> StorageClient:
    if settings.use_in_memory_backends or not settings.s3_bucket_name:
        logger.warning("S3_BUCKET_NAME not configured, using in-memory blob storage")
        return InMemoryStorageClient()
    return S3StorageClient(
        bucket=settings.s3_bucket_name,
        region=settings.aws_region,
        endpoint=settings.s3_endpoint_url,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        connect_timeout=settings.s3_connect_timeout,
        read_timeout=settings.s3_read_timeout,
        max_attempts=settings.s3_max_attempts,
    )


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request):
    return request.app.state.tokens


def get_auth_service(request: Request):
    return request.app.state.auth_service


def get_workflow(request: Request):
    return request.app.state.workflow
