"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, error handlers
    and the background scheduler lifecycle (kickoff reveals, season totals).

Dependencies:
    - app.database
    - app.services.live_stream
    - app.workers
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
)

import app.database as _db
from app.config import settings
from app.database import close_db, connect_db
from app.errors import PickemError
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.services.live_stream import live_stream

logger = logging.getLogger("pickem")
scheduler = AsyncIOScheduler()


def _build_job_specs() -> list[dict]:
    from app.workers.kickoff_watcher import publish_kickoff_reveals
    from app.workers.leaderboard import materialize_season_totals

    return [
        {
            "id": "kickoff_watcher",
            "func": publish_kickoff_reveals,
            "trigger": "interval",
            "trigger_kwargs": {"seconds": settings.KICKOFF_WATCH_SECONDS},
        },
        {
            "id": "season_totals",
            "func": materialize_season_totals,
            "trigger": "interval",
            "trigger_kwargs": {"minutes": settings.LEADERBOARD_REFRESH_MINUTES},
        },
    ]


def _register_jobs() -> int:
    added = 0
    for spec in _build_job_specs():
        if scheduler.get_job(spec["id"]):
            continue
        scheduler.add_job(
            spec["func"],
            spec["trigger"],
            id=spec["id"],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **spec["trigger_kwargs"],
        )
        added += 1
    return added


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_db()

    if settings.SCHEDULER_ENABLED:
        added = _register_jobs()
        scheduler.start()
        logger.info("Background scheduler started with %d jobs", added)
    else:
        logger.info("Background scheduler disabled via config")

    yield

    await live_stream.close()
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="Gridiron Pick'em",
    description="Weekly NFL pick'em: picks, live reveal and scoring",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Last-Event-ID"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from app.routers.admin import router as admin_router
from app.routers.leaderboard import router as leaderboard_router
from app.routers.live import router as live_router
from app.routers.picks import router as picks_router
from app.routers.scoring import router as scoring_router

app.include_router(picks_router)
app.include_router(admin_router)
app.include_router(scoring_router)
app.include_router(live_router)
app.include_router(leaderboard_router)


@app.exception_handler(PickemError)
async def pickem_error_handler(request: Request, exc: PickemError):
    request.state.error_kind = exc.kind
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(diagnostic=settings.DIAGNOSTIC_ERRORS),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    request.state.error_kind = "request_invalid"
    return JSONResponse(
        status_code=422,
        content={"kind": "request_invalid", "detail": "Validation error.", "errors": errors},
    )


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    request.state.error_kind = "conflict"
    return JSONResponse(status_code=409, content={"kind": "conflict", "detail": "Duplicate entry."})


@app.exception_handler(ConnectionFailure)
async def db_unavailable_handler(request: Request, exc: ConnectionFailure):
    # Also covers ServerSelectionTimeoutError
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    request.state.error_kind = "upstream_unavailable"
    return JSONResponse(
        status_code=503,
        content={"kind": "upstream_unavailable", "detail": "Service temporarily unavailable."},
    )


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    request.state.error_kind = "internal"
    return JSONResponse(status_code=500, content={"kind": "internal", "detail": "An internal error occurred."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    content = {"kind": "internal", "detail": "An internal error occurred."}
    if settings.DIAGNOSTIC_ERRORS:
        content["cause"] = repr(exc)
    return JSONResponse(status_code=500, content=content)


@app.get("/health")
async def health():
    """Health check -- verifies DB connection and reports live stream load."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "live_stream": live_stream.stats(),
        "scheduler": "running" if scheduler.running else "stopped",
    }
