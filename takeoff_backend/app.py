"""
FastAPI application entry point for the takeoff backend.

Run with ``uvicorn --factory takeoff_backend.app:create_app``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from takeoff_backend.auth import AuthService
from takeoff_backend.config import Settings, get_settings
from takeoff_backend.db import Database
from takeoff_backend.dependencies import build_storage_client
from takeoff_backend.errors import TakeoffError
from takeoff_backend.routes import router
from takeoff_backend.security import PasswordHasher, TokenService
from takeoff_backend.storage import StorageClient
from takeoff_backend.workflow import ProjectWorkflow

logger = logging.getLogger(__name__)


async def _takeoff_error_handler(request: Request, exc: TakeoffError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.message}, headers=headers
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{field}: {message}" if field else message},
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    db: Optional[Database] = None,
    storage: Optional[StorageClient] = None,
) -> FastAPI:
    """
    Build the application and its resources.

    ``db`` and ``storage`` can be injected (tests do); otherwise they are built
    from settings. Fails fast when the token secret is missing.

    The schema is applied on every startup, the same idempotent step as
    ``scripts/init_schema.py``, so a fresh database works without running the
    script first.
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    tokens = TokenService(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        default_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
    )
    db = db or Database.from_settings(settings)
    storage = storage or build_storage_client(settings)
    db.init_schema()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, disposing database pool")
        app.state.db.dispose()

    app = FastAPI(title="Takeoff Projects API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.storage = storage
    app.state.tokens = tokens
    app.state.auth_service = AuthService(db, PasswordHasher(settings.bcrypt_rounds), tokens)
    app.state.workflow = ProjectWorkflow(db, storage)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TakeoffError, _takeoff_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app
