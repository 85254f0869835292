"""
Health endpoints: liveness without dependencies, readiness with a DB probe.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from arvi.core.database import check_connection, get_engine, metadata

logger = logging.getLogger("arvi")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    inspector = inspect(get_engine())
    missing = [name for name in metadata.tables if not inspector.has_table(name)]
    if missing:
        detail = f"missing tables: {', '.join(sorted(missing))}"
        logger.warning("readyz.not_ready", extra={"detail": detail})
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok"}
