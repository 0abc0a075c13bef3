"""Shared fixtures for web tests."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from apex_coach.storage.backends import SqliteBackend
from apex_coach.storage.store import AnalysisStore
from apex_coach.web.app import app
from tests.factories import make_result


@pytest.fixture
def client():
    """FastAPI test client."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(tmp_path) -> str:
    """Path of a fresh SQLite store, passed to the API as ``?db=``."""
    return str(tmp_path / "apex.db")


@pytest.fixture
def api():
    """Patch the backend client used by the app; yields the mock instance."""
    instance = MagicMock()
    with patch("apex_coach.web.app.ApexClient", return_value=instance):
        yield instance


@pytest.fixture
def seed(db):
    """Save results straight into the test store: ``seed("id", identity="u1", **fields)``."""

    def _seed(analysis_id: str, identity: str | None = "u1", **fields) -> None:
        backend = SqliteBackend(db)
        try:
            AnalysisStore(backend).save(make_result(analysis_id=analysis_id, **fields), identity)
        finally:
            backend.close()

    return _seed
