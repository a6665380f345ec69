"""Bug list, detail, and mutation route handlers."""

from __future__ import annotations

import logging
from time import perf_counter

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from starlette.requests import Request

from bugtrail.core import BugDB
from bugtrail.dashboard_routes.common import _bug_not_found, _error_response, _parse_json_body
from bugtrail.validation import validate_bug_create, validate_bug_update

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------


def create_router() -> APIRouter:
    """Build the APIRouter for bug list, detail, and CRUD endpoints.

    Read endpoints never reject bad filter/sort/page values; they fall
    back to defaults. Must be included after the analytics router so
    ``/bugs/stats`` is matched before ``/bugs/{bug_id}``.

    NOTE: All handlers are intentionally async despite doing synchronous
    SQLite I/O. This serializes DB access on the event loop thread,
    avoiding concurrent multi-thread access to the shared DB connection.
    """
    from fastapi import Depends

    from bugtrail.dashboard import _get_db

    router = APIRouter()

    @router.get("/bugs")
    async def api_list_bugs(request: Request, db: BugDB = Depends(_get_db)) -> JSONResponse:
        started = perf_counter()
        result = db.list_bugs(request.query_params)
        payload = result.to_dict()
        logger.info(
            "Listed %d of %d bugs",
            len(result.items),
            result.total_count,
            extra={
                "route": "GET /api/bugs",
                "params": dict(request.query_params),
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
        return JSONResponse(payload)

    @router.get("/bugs/{bug_id}")
    async def api_get_bug(bug_id: str, db: BugDB = Depends(_get_db)) -> JSONResponse:
        try:
            bug = db.get_bug(bug_id)
        except KeyError:
            return _bug_not_found(bug_id)
        return JSONResponse(bug.to_dict())

    @router.post("/bugs")
    async def api_create_bug(request: Request, db: BugDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        kwargs, err = validate_bug_create(body)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        title = kwargs.pop("title")
        try:
            bug = db.create_bug(title, **kwargs)
        except ValueError as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(bug.to_dict(), status_code=201)

    @router.patch("/bugs/{bug_id}")
    async def api_update_bug(bug_id: str, request: Request, db: BugDB = Depends(_get_db)) -> JSONResponse:
        """Update bug fields. Status may move between any two states."""
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        kwargs, err = validate_bug_update(body)
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        try:
            bug = db.update_bug(bug_id, **kwargs)
        except KeyError:
            return _bug_not_found(bug_id)
        except ValueError as e:
            return _error_response(str(e), "VALIDATION_ERROR", 400)
        return JSONResponse(bug.to_dict())

    @router.delete("/bugs/{bug_id}")
    async def api_delete_bug(bug_id: str, db: BugDB = Depends(_get_db)) -> JSONResponse:
        try:
            db.delete_bug(bug_id)
        except KeyError:
            return _bug_not_found(bug_id)
        return JSONResponse({"deleted": bug_id})

    return router
