"""HTTP client for the remote analysis backend.

The base URL comes from the ``APEX_API_URL`` environment variable by
default.  Pass ``base_url`` explicitly in tests, and ``transport`` (an
``httpx`` transport such as :class:`httpx.MockTransport`) to stub the
network entirely.

Every call builds its own :class:`httpx.Client`, so concurrent calls never
share state.  Each operation has a total deadline (30 s submit, 20 s lap
preview, 10 s status, 5 s health), checked when the response headers
arrive and after every body chunk.  There is no retry policy; callers
decide whether to try again.
"""

from __future__ import annotations

import json
import logging
import math
import os
import time
from typing import Any
from urllib.parse import quote

import httpx

from apex_coach.api.models import (
    DEFAULT_TRACK_CONDITION,
    TRACK_CONDITIONS,
    AnalysisResult,
    AnalysisStatus,
    BackendHealth,
    LapInfo,
)
from apex_coach.api.normalizer import normalize_result
from apex_coach.api.validator import MAX_FILE_SIZE_BYTES, CsvUpload, validate_csv
from apex_coach.errors import (
    ANALYSIS_FAILED,
    HTTP_ERROR,
    INVALID_RESPONSE,
    NETWORK,
    TIMEOUT,
    UNKNOWN,
    VALIDATION,
    ApexError,
)

_logger = logging.getLogger(__name__)

SUBMIT_TIMEOUT_S = 30.0
PREVIEW_TIMEOUT_S = 20.0
STATUS_TIMEOUT_S = 10.0
HEALTH_TIMEOUT_S = 5.0

# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def build_analyze_form(
    lap_filter: list[int] | None = None,
    track_condition: str | None = None,
    track_temperature: float | None = None,
) -> dict[str, str]:
    """Return the non-file multipart fields for ``/api/v1/analyze``.

    ``lap_filter`` is sent only when non-empty; an unknown
    ``track_condition`` falls back to ``dry``; ``track_temperature`` is sent
    only when it is a finite number.
    """
    form: dict[str, str] = {}
    if lap_filter:
        form["lap_filter"] = json.dumps([int(n) for n in lap_filter])
    form["track_condition"] = (
        track_condition if track_condition in TRACK_CONDITIONS else DEFAULT_TRACK_CONDITION
    )
    if (
        isinstance(track_temperature, (int, float))
        and not isinstance(track_temperature, bool)
        and math.isfinite(track_temperature)
    ):
        form["track_temperature"] = str(track_temperature)
    return form


def parse_json_body(response: httpx.Response) -> Any:
    """Decode a JSON body, raising ``invalid_response`` when it is empty or malformed."""
    text = response.text
    if not text:
        raise ApexError(INVALID_RESPONSE, "Empty response from the analysis server")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ApexError(
            INVALID_RESPONSE, f"Invalid JSON response: {text[:100]}"
        ) from exc


def http_error_from_response(response: httpx.Response, fallback: str) -> ApexError:
    """Build an ``http_error`` from a non-2xx response.

    The backend's ``{error, message, details}`` body is used when it parses;
    otherwise the message is *fallback* followed by the status code.
    """
    body: Any = None
    try:
        body = json.loads(response.text) if response.text else None
    except json.JSONDecodeError:
        body = None

    details: dict[str, Any] = {"status_code": response.status_code}
    if isinstance(body, dict):
        error = body.get("error")
        message = body.get("message") or error
        details["error"] = error
        if body.get("details") is not None:
            details["details"] = body["details"]
        if message:
            return ApexError(HTTP_ERROR, str(message), details)

    reason = response.reason_phrase
    suffix = f" {reason}" if reason else ""
    return ApexError(HTTP_ERROR, f"{fallback} ({response.status_code}){suffix}", details)


def _read_before(response: httpx.Response, deadline: float) -> httpx.Response:
    """Read a streamed *response* in full, raising ``httpx.ReadTimeout`` past *deadline*.

    Returns a buffered copy with the same status and request.  The body is
    already decoded, so ``Content-Encoding`` and ``Content-Length`` are
    dropped from the copied headers.
    """
    if time.monotonic() > deadline:
        raise httpx.ReadTimeout("Deadline exceeded before the body", request=response.request)
    chunks: list[bytes] = []
    for chunk in response.iter_bytes():
        chunks.append(chunk)
        if time.monotonic() > deadline:
            raise httpx.ReadTimeout("Deadline exceeded while reading the body", request=response.request)
    headers = httpx.Headers(response.headers)
    for name in ("content-encoding", "content-length"):
        if name in headers:
            del headers[name]
    return httpx.Response(
        response.status_code,
        headers=headers,
        content=b"".join(chunks),
        request=response.request,
        extensions=response.extensions,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ApexClient:
    """Client for the analysis backend (``/api/v1/*`` and ``/health``).

    Args:
        base_url: Backend root; falls back to ``APEX_API_URL`` then
            :attr:`DEFAULT_BASE_URL`.
        transport: Optional ``httpx`` transport, injected for testing.
        max_file_size_bytes: Upper bound enforced by the validator.
    """

    DEFAULT_BASE_URL = "http://localhost:8000"

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
        max_file_size_bytes: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        url = base_url or os.environ.get("APEX_API_URL") or self.DEFAULT_BASE_URL
        self.base_url = url.rstrip("/")
        self._transport = transport
        self._max_file_size = max_file_size_bytes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        upload: CsvUpload,
        lap_filter: list[int] | None = None,
        track_condition: str | None = None,
        track_temperature: float | None = None,
    ) -> AnalysisResult:
        """Upload *upload* for analysis and return the normalized result.

        Raises
        ------
        ApexError
            ``validation`` before any I/O if the file is rejected; otherwise
            ``timeout``, ``network``, ``http_error``, ``invalid_response``,
            ``analysis_failed`` or ``unknown``.
        """
        self._validate(upload)
        form = build_analyze_form(lap_filter, track_condition, track_temperature)
        response = self._request(
            "POST",
            "/api/v1/analyze",
            SUBMIT_TIMEOUT_S,
            "Analysis request failed",
            files={"file": (upload.filename, upload.content, "text/csv")},
            data=form,
        )
        body = parse_json_body(response)
        if not isinstance(body, dict):
            raise ApexError(INVALID_RESPONSE, "Analysis response is not a JSON object")
        if not body.get("success"):
            raise ApexError(
                ANALYSIS_FAILED,
                "The analysis failed. Check that the CSV file is valid.",
            )
        result = normalize_result(body)
        _logger.info(
            "Analysis %s received: %d corners, overall score %.1f",
            result.analysis_id,
            result.corners_detected,
            result.performance_score.overall_score,
        )
        return result

    def preview_segments(self, upload: CsvUpload) -> list[LapInfo]:
        """Ask the backend which laps it detects in *upload*, for lap selection."""
        self._validate(upload)
        response = self._request(
            "POST",
            "/api/v1/parse-laps",
            PREVIEW_TIMEOUT_S,
            "Lap preview failed",
            files={"file": (upload.filename, upload.content, "text/csv")},
        )
        body = parse_json_body(response)
        if not isinstance(body, dict) or not body.get("success") or not isinstance(
            body.get("laps"), list
        ):
            raise ApexError(INVALID_RESPONSE, "Invalid parse-laps response")
        try:
            return [LapInfo.from_dict(lap) for lap in body["laps"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise ApexError(INVALID_RESPONSE, f"Invalid lap entry in parse-laps response: {exc}") from exc

    def get_status(self, analysis_id: str) -> AnalysisStatus:
        """Return the processing status of *analysis_id*."""
        if not analysis_id or not analysis_id.strip():
            raise ApexError(VALIDATION, "Invalid analysis id")
        response = self._request(
            "GET",
            f"/api/v1/status/{quote(analysis_id, safe='')}",
            STATUS_TIMEOUT_S,
            "Could not fetch analysis status",
        )
        body = parse_json_body(response)
        if not isinstance(body, dict) or "status" not in body:
            raise ApexError(INVALID_RESPONSE, "Invalid status response")
        message = body.get("message")
        return AnalysisStatus(
            analysis_id=str(body.get("analysis_id") or analysis_id),
            status=str(body["status"]),
            message=None if message is None else str(message),
        )

    def check_health(self) -> BackendHealth:
        """Return the backend's health report."""
        response = self._request("GET", "/health", HEALTH_TIMEOUT_S, "Backend unavailable")
        body = parse_json_body(response)
        if not isinstance(body, dict) or "status" not in body:
            raise ApexError(INVALID_RESPONSE, "Invalid health response")
        version = body.get("version")
        environment = body.get("environment")
        return BackendHealth(
            status=str(body["status"]),
            version=None if version is None else str(version),
            environment=None if environment is None else str(environment),
        )

    def is_reachable(self) -> bool:
        """True when :meth:`check_health` succeeds (never raises)."""
        try:
            self.check_health()
        except ApexError:
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, upload: CsvUpload) -> None:
        validation = validate_csv(upload, self._max_file_size)
        if not validation.valid:
            raise ApexError(VALIDATION, validation.error or "Validation error")

    def _request(
        self,
        method: str,
        path: str,
        timeout: float,
        context: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request and map every failure to an :class:`ApexError`.

        *timeout* is a total deadline for the whole exchange.  The body is
        streamed and the deadline checked after every chunk, so a server
        that trickles bytes cannot hold the call open past it.
        """
        deadline = time.monotonic() + timeout
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=timeout, transport=self._transport
            ) as client:
                with client.stream(method, path, **kwargs) as streamed:
                    response = _read_before(streamed, deadline)
        except httpx.TimeoutException as exc:
            _logger.warning("%s %s timed out after %gs", method, path, timeout)
            raise ApexError(
                TIMEOUT, f"The request timed out ({timeout:g}s). The file may be too large."
            ) from exc
        except httpx.TransportError as exc:
            _logger.warning("%s %s could not connect: %s", method, path, exc)
            raise ApexError(
                NETWORK,
                f"Could not connect to the server. Check that the backend is reachable ({self.base_url})",
            ) from exc
        except httpx.HTTPError as exc:
            _logger.warning("%s %s failed: %s", method, path, exc)
            raise ApexError(UNKNOWN, f"{context}: {exc}") from exc

        if not response.is_success:
            error = http_error_from_response(response, context)
            _logger.warning("%s %s returned HTTP %d: %s", method, path, response.status_code, error.message)
            raise error
        return response
