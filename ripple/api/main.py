"""
ripple.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn ripple.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from ripple.api.deps import get_engine  # noqa: E402
from ripple.api.routes.admin import router as admin_router  # noqa: E402
from ripple.api.routes.events import router as events_router  # noqa: E402
from ripple.api.routes.public import router as public_router  # noqa: E402
from ripple.errors import (  # noqa: E402
    ConcurrencyConflict,
    LedgerError,
    NotFoundError,
    StoreUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[LedgerError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Ripple API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Ripple API shutting down")


app = FastAPI(
    title="Ripple Leaderboard API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Translate ledger errors into HTTP responses."""
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            break
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})


# Mount routers
app.include_router(public_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
