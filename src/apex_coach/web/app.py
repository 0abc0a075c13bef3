"""FastAPI Web application: upload, history, export and comparison."""

from __future__ import annotations

import contextlib
import json
import os
from collections.abc import Iterator

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, Header, HTTPException, Response, UploadFile
from fastapi.responses import PlainTextResponse

from apex_coach.api.client import ApexClient
from apex_coach.api.validator import CsvUpload
from apex_coach.errors import (
    ANALYSIS_FAILED,
    HTTP_ERROR,
    INVALID_RESPONSE,
    NETWORK,
    NOT_FOUND,
    STORAGE_UNAVAILABLE,
    TIMEOUT,
    VALIDATION,
    ApexError,
)
from apex_coach.reporting.compare import compare_analyses
from apex_coach.reporting.formatter import MarkdownFormatter
from apex_coach.reporting.scores import aggregate_statistics, display_score
from apex_coach.storage.backends import BackendError, SqliteBackend
from apex_coach.storage.store import DEFAULT_MAX_ENTRIES, AnalysisStore, resolve_identity
from apex_coach.web.schemas import (
    AnalysesResponse,
    AnalyzeResponse,
    BackendHealthResponse,
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    LapPreviewResponse,
    LapRecord,
    StatisticsRecord,
    SummaryRecord,
)
from apex_coach.web.service import AnalysisService

load_dotenv()  # loads .env from project root; must run before env vars are consumed

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

VERSION = "0.1.0"

app = FastAPI(title="Apex Coach", version=VERSION)

_DEFAULT_DB = os.environ.get("APEX_STORE_DB", "apex_store.db")
_MAX_ENTRIES = int(os.environ.get("APEX_MAX_STORED_ANALYSES", DEFAULT_MAX_ENTRIES))

_STATUS_BY_KIND: dict[str, int] = {
    VALIDATION: 422,
    NOT_FOUND: 404,
    TIMEOUT: 504,
    NETWORK: 502,
    HTTP_ERROR: 502,
    ANALYSIS_FAILED: 502,
    INVALID_RESPONSE: 502,
    STORAGE_UNAVAILABLE: 503,
}


@contextlib.contextmanager
def _store(db_path: str | None = None) -> Iterator[AnalysisStore]:
    path = db_path or _DEFAULT_DB
    try:
        backend = SqliteBackend(path)
    except BackendError as exc:
        raise ApexError(STORAGE_UNAVAILABLE, f"Cannot open result store: {exc}") from exc
    try:
        yield AnalysisStore(backend, max_entries=_MAX_ENTRIES)
    finally:
        backend.close()


def _http_error(exc: ApexError) -> HTTPException:
    detail = ErrorResponse(kind=exc.kind, message=exc.message, hint=exc.hint)
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, 500), detail=detail.model_dump()
    )


def _not_found(analysis_id: str) -> HTTPException:
    return _http_error(ApexError(NOT_FOUND, f"Analysis not found: {analysis_id}"))


def _read_upload(file: UploadFile) -> CsvUpload:
    return CsvUpload(filename=file.filename or "", content=file.file.read())


def _parse_lap_filter(raw: str | None) -> list[int] | None:
    if not raw:
        return None
    try:
        laps = json.loads(raw)
        if not isinstance(laps, list):
            raise ValueError("not a list")
        return [int(n) for n in laps]
    except (json.JSONDecodeError, TypeError, ValueError) as exc:
        raise _http_error(
            ApexError(VALIDATION, f"lap_filter must be a JSON list of lap numbers ({exc})")
        ) from exc


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok", version=VERSION)


@app.get("/api/backend/health", response_model=BackendHealthResponse)
def backend_health() -> BackendHealthResponse:
    """Report whether the analysis backend answers its health check."""
    try:
        info = ApexClient().check_health()
    except ApexError as exc:
        return BackendHealthResponse(reachable=False, error=exc.message)
    return BackendHealthResponse(
        reachable=True,
        status=info.status,
        version=info.version,
        environment=info.environment,
    )


@app.post("/api/analyses", response_model=AnalyzeResponse)
def analyze(
    file: UploadFile = File(...),
    lap_filter: str | None = Form(None),
    track_condition: str | None = Form(None),
    track_temperature: float | None = Form(None),
    x_user_id: str | None = Header(None),
    db: str | None = None,
) -> AnalyzeResponse:
    """Validate and submit a session, then save the result for the caller.

    A failed save does not fail the request: the result is returned with
    ``saved=false`` and the reason in ``save_error``.
    """
    upload = _read_upload(file)
    laps = _parse_lap_filter(lap_filter)
    with contextlib.ExitStack() as stack:
        store: AnalysisStore | None = None
        store_error: ApexError | None = None
        try:
            store = stack.enter_context(_store(db))
        except ApexError as exc:
            store_error = exc

        svc = AnalysisService(ApexClient(), store)
        try:
            outcome = svc.run_analysis(
                upload,
                identity=x_user_id,
                lap_filter=laps,
                track_condition=track_condition,
                track_temperature=track_temperature,
            )
        except ApexError as exc:
            raise _http_error(exc) from exc

    result = outcome.result
    if store_error is not None:
        outcome.save_error = store_error
    return AnalyzeResponse(
        analysis_id=outcome.saved_id or result.analysis_id,
        display_score=display_score(result.performance_score),
        grade=result.performance_score.grade,
        saved=outcome.saved,
        save_error=outcome.save_error.message if outcome.save_error else None,
        result=result.to_dict(),
    )


@app.post("/api/laps/preview", response_model=LapPreviewResponse)
def preview_laps(file: UploadFile = File(...)) -> LapPreviewResponse:
    """Return the laps the backend detects, so the user can pick which to analyze."""
    try:
        laps = ApexClient().preview_segments(_read_upload(file))
    except ApexError as exc:
        raise _http_error(exc) from exc
    return LapPreviewResponse(
        laps=[
            LapRecord(
                lap_number=lap.lap_number,
                lap_time_seconds=lap.lap_time_seconds,
                points_count=lap.points_count,
                is_outlier=lap.is_outlier,
            )
            for lap in laps
        ]
    )


@app.get("/api/analyses", response_model=AnalysesResponse)
def list_analyses(x_user_id: str | None = Header(None), db: str | None = None) -> AnalysesResponse:
    """Return the caller's saved analyses (newest first) with aggregate statistics."""
    try:
        with _store(db) as store:
            summaries = store.list_summaries(x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc

    stats = aggregate_statistics(summaries)
    return AnalysesResponse(
        identity=resolve_identity(x_user_id),
        analyses=[SummaryRecord(**s.to_dict()) for s in summaries],
        statistics=StatisticsRecord(
            total=stats.total,
            average_score=stats.average_score,
            best_score=stats.best_score,
            best_id=stats.best_entry.id if stats.best_entry else None,
        ),
    )


@app.get("/api/analyses/{analysis_id}")
def get_analysis(
    analysis_id: str, x_user_id: str | None = Header(None), db: str | None = None
) -> dict:
    try:
        with _store(db) as store:
            result = store.get_by_id(analysis_id, x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    if result is None:
        raise _not_found(analysis_id)
    return result.to_dict()


@app.delete("/api/analyses/{analysis_id}", response_model=DeleteResponse)
def delete_analysis(
    analysis_id: str, x_user_id: str | None = Header(None), db: str | None = None
) -> DeleteResponse:
    try:
        with _store(db) as store:
            deleted = store.delete_by_id(analysis_id, x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    if not deleted:
        raise _not_found(analysis_id)
    return DeleteResponse(deleted=1)


@app.delete("/api/analyses", response_model=DeleteResponse)
def clear_analyses(x_user_id: str | None = Header(None), db: str | None = None) -> DeleteResponse:
    """Delete every analysis saved for the caller (other identities are untouched)."""
    try:
        with _store(db) as store:
            removed = store.clear_all(x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    return DeleteResponse(deleted=removed)


@app.get("/api/analyses/{analysis_id}/export")
def export_analysis(
    analysis_id: str, x_user_id: str | None = Header(None), db: str | None = None
) -> Response:
    """Download the stored result as a JSON file."""
    try:
        with _store(db) as store:
            blob = store.export_as_blob(analysis_id, x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    return Response(
        content=blob,
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="apex-analysis-{analysis_id}.json"'
        },
    )


@app.get("/api/analyses/{analysis_id}/report", response_class=PlainTextResponse)
def report(
    analysis_id: str, x_user_id: str | None = Header(None), db: str | None = None
) -> PlainTextResponse:
    """Render the stored result as a Markdown report."""
    try:
        with _store(db) as store:
            result = store.get_by_id(analysis_id, x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    if result is None:
        raise _not_found(analysis_id)
    return PlainTextResponse(MarkdownFormatter().format(result), media_type="text/markdown")


@app.get("/api/compare")
def compare(
    base: str, other: str, x_user_id: str | None = Header(None), db: str | None = None
) -> dict:
    """Compare two of the caller's analyses (``other`` minus ``base``)."""
    try:
        with _store(db) as store:
            base_result = store.get_by_id(base, x_user_id)
            other_result = store.get_by_id(other, x_user_id)
    except ApexError as exc:
        raise _http_error(exc) from exc
    if base_result is None:
        raise _not_found(base)
    if other_result is None:
        raise _not_found(other)
    return compare_analyses(base_result, other_result).to_dict()
