"""FastAPI application entrypoint."""
from __future__ import annotations

import datetime as dt
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from sqlalchemy import func, select

from shortlink.api.v1 import api_router
from shortlink.core.config import get_settings
from shortlink.core.database import dispose_engine
from shortlink.core.dependencies import DBSession
from shortlink.core.errors import ServiceError
from shortlink.core.health import build_health_payload
from shortlink.core.logging import RequestLoggingMiddleware, configure_logging, record_validation_error
from shortlink.core.metrics import CONTENT_TYPE_LATEST, render_metrics
from shortlink.models.delete_request import DeleteRequest, DeleteRequestStatus
from shortlink.models.user import User, UserRole, UserStatus

configure_logging()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.bind(environment=settings.env, version=settings.git_sha or "unknown").info("service_starting")
    yield
    await dispose_engine()


app = FastAPI(title="Shortlink Admin Backend", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.bind(
        path=request.url.path,
        method=request.method,
        code=exc.code,
        status_code=exc.status_code,
    ).info("service_error")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        content = detail
    else:
        content = {"error": {"code": "http_error", "message": str(detail)}}
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        if isinstance(exc.detail, str):
            request.state.error_detail = exc.detail
        elif isinstance(exc.detail, dict):
            request.state.error_detail = exc.detail.get("code", "http_error")
    headers = exc.headers if exc.headers else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def _jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx may carry the raw exception instance, which is not JSON serialisable.
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = _jsonable_errors(exc)
    record_validation_error(request, "validation_error", errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed.",
                "details": errors,
            }
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request.state.error_detail = exc.__class__.__name__
    logger.exception("Unhandled application error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "server_error", "message": "Internal server error."}},
    )


app.include_router(api_router)


@app.get("/status", tags=["status"], response_model=dict)
async def service_status(session: DBSession) -> dict[str, Any]:
    """Expose business-facing service status information."""

    now = dt.datetime.now(dt.timezone.utc)
    user_stmt = select(User.status, func.count()).group_by(User.status)
    user_counts = {row[0].value: int(row[1]) for row in (await session.execute(user_stmt)).all()}

    admin_stmt = (
        select(func.count())
        .select_from(User)
        .where(User.role == UserRole.ADMIN, User.status == UserStatus.ACTIVE)
    )
    active_admins = int((await session.execute(admin_stmt)).scalar_one())

    request_stmt = select(DeleteRequest.status, func.count()).group_by(DeleteRequest.status)
    request_counts = {row[0].value: int(row[1]) for row in (await session.execute(request_stmt)).all()}

    return {
        "timestamp": now.isoformat(),
        "environment": settings.env,
        "version": settings.git_sha or "unknown",
        "users": {value.value: user_counts.get(value.value, 0) for value in UserStatus},
        "admins_active": active_admins,
        "delete_requests": {value.value: request_counts.get(value.value, 0) for value in DeleteRequestStatus},
    }


@app.get("/health", tags=["health"], response_model=dict)
async def health() -> dict[str, object]:
    """Return infrastructure-focused health telemetry."""

    payload = await build_health_payload(settings.git_sha)
    return payload


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus-formatted metrics."""

    return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)
