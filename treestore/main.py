"""treestore FastAPI application: routers, middleware and startup checks."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import engine, get_db, init_db, is_postgresql, DATABASE_URL
from .api import auth_router, directories_router, files_router, entities_router, paths_router
from .core.config import settings, ConfigurationError
from .core.logging_config import setup_logging
from .middleware.exception_handler import treestore_exception_handler, unhandled_exception_handler
from .middleware.request_context import RequestContextMiddleware
from .exceptions import TreeStoreException

setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _redact_db_url(url: str) -> str:
    """Hide the password component of a database URL."""
    return re.sub(r'://([^:/@]+):([^@]+)@', r'://\1:***@', url)


def _check_metadata_store() -> None:
    """Fail startup early when the metadata database cannot be reached."""
    shown = _redact_db_url(DATABASE_URL)
    backend = "PostgreSQL" if is_postgresql() else "SQLite"
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.critical(
            "[INTERNAL] %s metadata store unreachable at %s: %s", backend, shown, e
        )
        raise SystemExit(1) from e
    logger.info("Metadata store reachable", extra={"backend": backend, "url": shown})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration, reach the database and create missing tables."""
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e
    for problem in settings.insecure_settings():
        logger.warning("Insecure development setting: %s", problem)

    _check_metadata_store()
    init_db()

    logger.info(
        "treestore API started | env=%s | db=%s | path_policy=%s | storage=%s",
        settings.environment.value,
        "PostgreSQL" if is_postgresql() else "SQLite",
        settings.path_policy.value,
        settings.storage_root,
    )
    yield


app = FastAPI(
    title="treestore API",
    description=(
        "Per-user hierarchical file storage. Each user owns a tree of directories "
        "and files addressable by id and by logical path.\n\n"
        "**Authentication:** every tree endpoint requires a `Bearer` token in the "
        "`Authorization` header, obtained from `POST /api/auth/login`."
    ),
    version=VERSION,
    lifespan=lifespan,
)

# CORS is added first so it ends up outside the request context middleware.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)

app.add_exception_handler(TreeStoreException, treestore_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

for router in (auth_router, directories_router, files_router, entities_router, paths_router):
    app.include_router(router)


_started_at = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a metadata-store probe.

    Always answers 200; a failed probe reports ``degraded`` instead.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as e:
        logger.warning("Health probe could not reach the metadata store: %s", e)
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "path_policy": settings.path_policy.value,
        "uptime_seconds": round(time.monotonic() - _started_at),
        "version": VERSION,
    }
