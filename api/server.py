"""
ClientDesk API Server - REST/JSON API for the single-page client.
"""
# ruff: noqa: S104
# S104: Development server binding (guarded by __name__ check)

import logging
import sqlite3
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api import auth
from api.billing_router import public_router
from api.billing_router import router as billing_router
from api.campaigns_router import router as campaigns_router
from api.clients_router import router as clients_router
from api.dashboard_router import router as dashboard_router
from api.notes_router import router as notes_router
from api.response_models import HealthResponse
from api.tasks_router import router as tasks_router
from clientdesk import __version__, config, users
from clientdesk import db as db_module
from clientdesk.clients import sync_all_overdue_statuses
from clientdesk.observability import CorrelationIdMiddleware, configure_logging

logger = logging.getLogger(__name__)

# FastAPI app initialization
app = FastAPI(
    title="ClientDesk API",
    description="Client relationship, billing and task management",
    version=__version__,
)

# CORS middleware - configurable via CLIENTDESK_CORS_ORIGINS
# Dev default: allow all origins; Production: comma-separated list
cors_origins = (
    ["*"]
    if config.CORS_ORIGINS == "*"
    else [o.strip() for o in config.CORS_ORIGINS.split(",") if o.strip()]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=config.SESSION_SECRET, same_site="lax")
app.add_middleware(CorrelationIdMiddleware)

# ==== Routers ====
# notes_router owns /api/tasks/today and /api/tasks/overdue; it must be
# registered before tasks_router or /api/tasks/{task_id} would capture them.
app.include_router(auth.router)
app.include_router(clients_router)
app.include_router(billing_router)
app.include_router(public_router)
app.include_router(campaigns_router)
app.include_router(notes_router)
app.include_router(tasks_router)
app.include_router(dashboard_router)


# ==== Error handling ====


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(sqlite3.Error)
async def database_exception_handler(request: Request, exc: sqlite3.Error):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"message": "Database error"})


# ==== DB Startup & Migrations ====


@app.on_event("startup")
async def run_db_migrations_on_startup():
    """Converge the schema, create the bootstrap user and refresh overdue flags."""
    logger.info("=== ClientDesk Startup ===")
    db_module.run_startup_migrations()
    users.ensure_admin_user()
    changed = sync_all_overdue_statuses()
    if changed:
        logger.info("Overdue status changed for %d client(s)", len(changed))


# ==== Health ====


@app.get("/api/health", response_model=HealthResponse)
def health():
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now().isoformat(),
    }


if __name__ == "__main__":
    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8420)
