"""Web API server for bugtrail.

A local FastAPI app serving the JSON API the browser client talks to.
A module-level ``_db`` is set at startup and injected via
``Depends(_get_db)``.

Usage:
    bugtrail dashboard                    # Serves at localhost:8377
    bugtrail dashboard --port 9000        # Custom port
"""

from __future__ import annotations

import logging
from typing import Any

from bugtrail.core import BugDB, find_bugtrail_root
from bugtrail.logging import setup_logging

DEFAULT_PORT = 8377

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: BugDB | None = None


def _get_db() -> BugDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def create_app() -> Any:
    """Create the FastAPI application with all API endpoints."""
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse

    from bugtrail import __version__
    from bugtrail.dashboard_routes import analytics, bugs

    app = FastAPI(title="bugtrail", version=__version__, docs_url=None, redoc_url=None)

    # Literal /bugs/stats must be registered before /bugs/{bug_id}.
    app.include_router(analytics.create_router(), prefix="/api")
    app.include_router(bugs.create_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "version": __version__})

    return app


def main(port: int = DEFAULT_PORT) -> None:
    """Start the API server for the project discovered from cwd."""
    import uvicorn

    global _db

    bugtrail_dir = find_bugtrail_root()
    setup_logging(bugtrail_dir)
    _db = BugDB.from_project(bugtrail_dir.parent, check_same_thread=False)
    logger.info("Serving %s on port %d (%d bugs)", bugtrail_dir, port, _db.count_bugs())

    app = create_app()

    print(f"bugtrail API: http://localhost:{port}/api/bugs")
    try:
        uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
    finally:
        _db.close()
        _db = None
