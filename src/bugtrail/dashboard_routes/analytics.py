"""Statistics and runtime-config route handlers."""

from __future__ import annotations

import logging
from time import perf_counter

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from starlette.requests import Request

from bugtrail.core import BugDB
from bugtrail.filters import normalize_filters

logger = logging.getLogger(__name__)


def create_router() -> APIRouter:
    """Build the APIRouter for statistics and config endpoints.

    NOTE: All handlers are intentionally async despite doing synchronous
    SQLite I/O. This serializes DB access on the event loop thread,
    avoiding concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import Depends

    from bugtrail.dashboard import _get_db

    router = APIRouter()

    @router.get("/bugs/stats")
    async def api_stats(request: Request, db: BugDB = Depends(_get_db)) -> JSONResponse:
        """Aggregate report, scoped by the same filters as the list endpoint."""
        started = perf_counter()
        filters = normalize_filters(request.query_params)
        report = db.get_stats(filters)
        logger.info(
            "Computed stats over %d bugs",
            report["total"],
            extra={
                "route": "GET /api/bugs/stats",
                "params": dict(filters),
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
        return JSONResponse(report)

    @router.get("/config")
    async def api_config(db: BugDB = Depends(_get_db)) -> JSONResponse:
        """Effective query settings exposed to frontend consumers."""
        return JSONResponse(db.settings.to_dict())

    return router
