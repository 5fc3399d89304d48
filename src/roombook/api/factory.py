"""FastAPI application factory.

APP_ROLE selects the deployment: "public" serves the booking API, "worker"
additionally serves the scheduler-triggered task endpoints.
"""

import os
from typing import Literal

import psycopg2
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from roombook.observability.correlation import CORRELATION_ID_HEADER, bound_correlation_id
from roombook.observability.logging import get_logger
from roombook.observability.redaction import safe_log_context

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)


async def _store_unavailable(request: Request, exc: psycopg2.OperationalError) -> JSONResponse:
    # Reached only by reads that run outside the retrying write path
    logger.error(
        "booking store unavailable",
        extra={
            "extra_fields": safe_log_context(
                path=request.url.path,
                error_type=type(exc).__name__,
            )
        },
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Booking store temporarily unavailable"},
    )


def create_app(role: AppRole | None = None) -> FastAPI:
    """Build the app for ``role`` (default: APP_ROLE, else "public")."""
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    app = FastAPI(title="roombook", docs_url=None, redoc_url=None)
    app.add_exception_handler(psycopg2.OperationalError, _store_unavailable)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with bound_correlation_id(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)
    if role == "worker":
        app.include_router(worker.router)

    return app
