"""Upload, history, export, report and compare endpoints (backend client mocked)."""

from __future__ import annotations

import json

import pytest

from apex_coach.api.models import LapInfo
from apex_coach.errors import ANALYSIS_FAILED, TIMEOUT, VALIDATION, ApexError
from apex_coach.storage.backends import SqliteBackend
from apex_coach.storage.store import DEFAULT_PREFIX
from tests.factories import csv_bytes, make_result

_USER = {"X-User-Id": "u1"}


def _files(name: str = "session.csv"):
    return {"file": (name, csv_bytes(), "text/csv")}


# ---------------------------------------------------------------------------
# POST /api/analyses
# ---------------------------------------------------------------------------


def test_analyze_saves_and_returns_result(client, api, db):
    api.submit.return_value = make_result()
    resp = client.post(
        "/api/analyses",
        params={"db": db},
        files=_files(),
        data={"lap_filter": "[2, 3]", "track_condition": "wet", "track_temperature": "14.5"},
        headers=_USER,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["analysis_id"] == "abc123"
    assert data["display_score"] == pytest.approx(78.0)
    assert data["grade"] == "B"
    assert data["saved"] is True
    assert data["save_error"] is None
    assert data["result"]["corners_detected"] == 2

    _, kwargs = api.submit.call_args
    assert kwargs["lap_filter"] == [2, 3]
    assert kwargs["track_condition"] == "wet"
    assert kwargs["track_temperature"] == pytest.approx(14.5)

    listing = client.get("/api/analyses", params={"db": db}, headers=_USER).json()
    assert [a["id"] for a in listing["analyses"]] == ["abc123"]


def test_analyze_backend_timeout_returns_504(client, api, db):
    api.submit.side_effect = ApexError(TIMEOUT, "The request timed out (30s).")
    resp = client.post("/api/analyses", params={"db": db}, files=_files(), headers=_USER)
    assert resp.status_code == 504
    detail = resp.json()["detail"]
    assert detail["kind"] == "timeout"
    assert detail["hint"]


def test_analyze_validation_error_returns_422(client, api, db):
    api.submit.side_effect = ApexError(VALIDATION, "The file must be a CSV (.csv)")
    resp = client.post("/api/analyses", params={"db": db}, files=_files("x.txt"))
    assert resp.status_code == 422
    assert resp.json()["detail"]["message"] == "The file must be a CSV (.csv)"


def test_analyze_failed_returns_502(client, api, db):
    api.submit.side_effect = ApexError(ANALYSIS_FAILED, "The analysis failed.")
    resp = client.post("/api/analyses", params={"db": db}, files=_files())
    assert resp.status_code == 502


def test_analyze_bad_lap_filter_returns_422(client, api, db):
    resp = client.post("/api/analyses", params={"db": db}, files=_files(), data={"lap_filter": "two"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["kind"] == "validation"
    api.submit.assert_not_called()


def test_analyze_store_unavailable_still_returns_result(client, api, tmp_path):
    api.submit.return_value = make_result()
    bad_db = str(tmp_path / "missing-dir" / "apex.db")
    resp = client.post("/api/analyses", params={"db": bad_db}, files=_files(), headers=_USER)
    assert resp.status_code == 200
    data = resp.json()
    assert data["saved"] is False
    assert "Cannot open result store" in data["save_error"]
    assert data["result"]["analysis_id"] == "abc123"


# ---------------------------------------------------------------------------
# POST /api/laps/preview
# ---------------------------------------------------------------------------


def test_preview_laps(client, api):
    api.preview_segments.return_value = [LapInfo(1, 63.1, 1200), LapInfo(2, 95.0, 1900, True)]
    resp = client.post("/api/laps/preview", files=_files())
    assert resp.status_code == 200
    laps = resp.json()["laps"]
    assert [lap["lap_number"] for lap in laps] == [1, 2]
    assert laps[1]["is_outlier"] is True


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def test_list_empty(client, db):
    data = client.get("/api/analyses", params={"db": db}).json()
    assert data["identity"] == "guest"
    assert data["analyses"] == []
    assert data["statistics"] == {"total": 0, "average_score": 0, "best_score": 0, "best_id": None}


def test_list_is_per_identity_with_statistics(client, db, seed):
    seed("a", overall_score=70.0, breakdown=(20.0, 20.0, 15.0, 15.0))
    seed("b", overall_score=85.0, breakdown=(25.0, 20.0, 20.0, 20.0))
    seed("other", identity="u2")

    data = client.get("/api/analyses", params={"db": db}, headers=_USER).json()
    assert data["identity"] == "u1"
    assert {a["id"] for a in data["analyses"]} == {"a", "b"}
    assert data["statistics"]["total"] == 2
    assert data["statistics"]["average_score"] == 78
    assert data["statistics"]["best_score"] == 85
    assert data["statistics"]["best_id"] == "b"


def test_get_analysis(client, db, seed):
    seed("a")
    resp = client.get("/api/analyses/a", params={"db": db}, headers=_USER)
    assert resp.status_code == 200
    assert resp.json()["analysis_id"] == "a"


def test_get_analysis_of_other_identity_is_404(client, db, seed):
    seed("a")
    resp = client.get("/api/analyses/a", params={"db": db}, headers={"X-User-Id": "u2"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["kind"] == "not_found"


def test_delete_analysis(client, db, seed):
    seed("a")
    resp = client.delete("/api/analyses/a", params={"db": db}, headers=_USER)
    assert resp.status_code == 200
    assert resp.json() == {"deleted": 1}
    assert client.get("/api/analyses/a", params={"db": db}, headers=_USER).status_code == 404


def test_delete_missing_is_404(client, db):
    resp = client.delete("/api/analyses/nope", params={"db": db}, headers=_USER)
    assert resp.status_code == 404


def test_clear_analyses(client, db, seed):
    seed("a")
    seed("b")
    seed("keep", identity="u2")
    resp = client.delete("/api/analyses", params={"db": db}, headers=_USER)
    assert resp.json() == {"deleted": 2}
    remaining = client.get("/api/analyses", params={"db": db}, headers={"X-User-Id": "u2"}).json()
    assert [a["id"] for a in remaining["analyses"]] == ["keep"]


# ---------------------------------------------------------------------------
# Export, report, compare
# ---------------------------------------------------------------------------


def test_export(client, db, seed):
    seed("a")
    resp = client.get("/api/analyses/a/export", params={"db": db}, headers=_USER)
    assert resp.status_code == 200
    assert resp.headers["content-disposition"] == 'attachment; filename="apex-analysis-a.json"'
    assert json.loads(resp.content)["analysis_id"] == "a"


def test_export_missing_is_404(client, db):
    resp = client.get("/api/analyses/nope/export", params={"db": db}, headers=_USER)
    assert resp.status_code == 404


def test_report(client, db, seed):
    seed("a")
    resp = client.get("/api/analyses/a/report", params={"db": db}, headers=_USER)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/markdown")
    assert resp.text.startswith("# Session analysis report")


def test_compare(client, db, seed):
    seed("a", overall_score=70.0, breakdown=(20.0, 20.0, 15.0, 15.0), lap_time=63.0)
    seed("b", lap_time=62.0)
    resp = client.get("/api/compare", params={"db": db, "base": "a", "other": "b"}, headers=_USER)
    assert resp.status_code == 200
    data = resp.json()
    assert data["score_delta"] == pytest.approx(8.0)
    assert data["lap_time_delta"] == pytest.approx(-1.0)


def test_compare_missing_is_404(client, db, seed):
    seed("a")
    resp = client.get("/api/compare", params={"db": db, "base": "a", "other": "zzz"}, headers=_USER)
    assert resp.status_code == 404


def test_analyze_survives_corrupt_stored_entry(client, api, db, seed):
    seed("old")
    backend = SqliteBackend(db)
    backend.set(f"{DEFAULT_PREFIX}_u1_old", '{"id": "old", "timestamp": 1e999, "result": {}}')
    backend.close()

    api.submit.return_value = make_result()
    resp = client.post("/api/analyses", params={"db": db}, files=_files(), headers=_USER)
    assert resp.status_code == 200
    assert resp.json()["saved"] is True

    listing = client.get("/api/analyses", params={"db": db}, headers=_USER).json()
    assert [a["id"] for a in listing["analyses"]] == ["abc123"]
