"""
clubhouse.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn clubhouse.api.main:app --reload --port 8000

Every error leaves the API as ``{"success": false, "kind": ..., "message": ...}``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

from clubhouse.api.auth import router as auth_router  # noqa: E402
from clubhouse.api.deps import get_engine  # noqa: E402
from clubhouse.api.routes.admin import router as admin_router  # noqa: E402
from clubhouse.api.routes.announcements import router as announcements_router  # noqa: E402
from clubhouse.api.routes.events import router as events_router  # noqa: E402
from clubhouse.errors import ClubhouseError, InternalError, ValidationError  # noqa: E402
from clubhouse.logging_setup import configure_logging  # noqa: E402

logger = logging.getLogger(__name__)


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
    """Startup/shutdown lifecycle — configure logging, warm the DB engine."""
    # Uvicorn reconfigures logging on startup, so this runs here rather
    # than at import time.
    configure_logging()

    engine = get_engine()
    logger.info("Clubhouse API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Clubhouse API shutting down")


app = FastAPI(
    title="Clubhouse API",
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


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------
@app.exception_handler(ClubhouseError)
async def clubhouse_error_handler(request: Request, exc: ClubhouseError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    error = ValidationError("; ".join(messages) or "Invalid request")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(auth_router, prefix="/api")
app.include_router(announcements_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"success": True, "status": "ok"}
