"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

import bugtrail.dashboard as dash_module
from bugtrail.core import BugDB, QuerySettings
from bugtrail.dashboard import create_app


@pytest.fixture
def api_db(tmp_path: Path) -> Generator[BugDB, None, None]:
    """BugDB opened with check_same_thread=False, as the server does."""
    d = BugDB(
        tmp_path / "bugtrail.db",
        prefix="api",
        settings=QuerySettings(default_page_size=3, max_page_size=5, recent_window_hours=24),
        check_same_thread=False,
    )
    d.initialize()
    yield d
    d.close()


@pytest.fixture
async def client(api_db: BugDB) -> AsyncIterator[AsyncClient]:
    """Test client bound to api_db via the module-level _db."""
    dash_module._db = api_db
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    dash_module._db = None
