"""Response normalization: maps raw backend JSON onto the canonical models.

The backend has shipped several field spellings over time (``type`` vs
``corner_type``, ``apex_distance_m`` vs ``apex_distance_error``,
``time_impact_seconds`` vs ``impact_seconds``).  Every function here is
total: missing or malformed fields get a typed default and a warning is
logged, nothing is ever raised.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from apex_coach.api.models import (
    DEFAULT_TRACK_CONDITION,
    AnalysisResult,
    CoachingAdvice,
    CornerAnalysis,
    PerformanceScore,
    ScoreBreakdown,
    SessionConditions,
)

_logger = logging.getLogger(__name__)

# Canonical corner keys whose absence is worth reporting.
_EXPECTED_CORNER_KEYS = ("corner_id", "corner_number", "grade", "score")

_BREAKDOWN_KEYS = ("apex_precision", "trajectory_consistency", "apex_speed", "sector_times")

# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def to_float(value: Any, default: float = 0.0) -> float:
    """Permissive numeric conversion: anything non-numeric or non-finite → *default*."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def to_int(value: Any, default: int = 0) -> int:
    return int(to_float(value, float(default)))


def to_opt_float(value: Any) -> float | None:
    """``None`` stays ``None``; anything else goes through :func:`to_float`."""
    return None if value is None else to_float(value)


def _as_mapping(raw: Any, what: str) -> Mapping:
    if isinstance(raw, Mapping):
        return raw
    _logger.warning("%s: expected an object, got %s", what, type(raw).__name__)
    return {}


def _as_list(raw: Any, what: str) -> list:
    if isinstance(raw, list):
        return raw
    if raw is not None:
        _logger.warning("%s: expected a list, got %s", what, type(raw).__name__)
    else:
        _logger.warning("result: missing expected key %s", what)
    return []


def _pick(raw: Mapping, key: str, legacy: str, what: str) -> Any:
    """Return ``raw[key]``, falling back to ``raw[legacy]`` with a warning."""
    if key in raw:
        return raw[key]
    if legacy in raw:
        _logger.warning("%s: expected %r, got %r", what, key, legacy)
        return raw[legacy]
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize_corner(raw: Any) -> CornerAnalysis:
    """Normalize one raw ``corner_analysis`` entry."""
    raw = _as_mapping(raw, "corner")
    for key in _EXPECTED_CORNER_KEYS:
        if key not in raw:
            _logger.warning("corner: missing expected key %r", key)

    corner_type = _pick(raw, "corner_type", "type", "corner")
    apex_distance = _pick(raw, "apex_distance_error", "apex_distance_m", "corner")
    corner_id = to_int(raw.get("corner_id"))
    number = raw.get("corner_number")

    return CornerAnalysis(
        corner_id=corner_id,
        corner_number=corner_id if number is None else to_int(number),
        corner_type="unknown" if corner_type is None else str(corner_type),
        apex_speed_real=to_float(raw.get("apex_speed_real")),
        apex_speed_optimal=to_float(raw.get("apex_speed_optimal")),
        speed_efficiency=to_float(raw.get("speed_efficiency")),
        apex_distance_error=to_float(apex_distance),
        apex_direction_error=str(raw.get("apex_direction_error") or "center"),
        lateral_g_max=to_float(raw.get("lateral_g_max")),
        time_lost=to_float(raw.get("time_lost")),
        grade=str(raw.get("grade") or "C"),
        score=to_float(raw.get("score"), 50.0),
        entry_speed=to_opt_float(raw.get("entry_speed")),
        exit_speed=to_opt_float(raw.get("exit_speed")),
        target_entry_speed=to_opt_float(raw.get("target_entry_speed")),
        target_exit_speed=to_opt_float(raw.get("target_exit_speed")),
    )


def normalize_advice(raw: Any) -> CoachingAdvice:
    """Normalize one raw ``coaching_advice`` entry."""
    raw = _as_mapping(raw, "coaching")
    impact = _pick(raw, "impact_seconds", "time_impact_seconds", "coaching")
    corner = raw.get("corner")
    return CoachingAdvice(
        priority=to_int(raw.get("priority"), 5),
        category=str(raw.get("category") or "global"),
        impact_seconds=to_float(impact),
        corner=None if corner is None else to_int(corner),
        message=str(raw.get("message") or ""),
        explanation=str(raw.get("explanation") or ""),
        difficulty=str(raw.get("difficulty") or "moyen"),
    )


def normalize_score(raw: Any) -> PerformanceScore:
    """Normalize the ``performance_score`` block.  The stored overall score is kept as received."""
    raw = _as_mapping(raw, "performance_score")
    if "overall_score" not in raw:
        _logger.warning("performance_score: missing expected key 'overall_score'")
    breakdown = _as_mapping(raw.get("breakdown", {}), "breakdown")
    for key in _BREAKDOWN_KEYS:
        if key not in breakdown:
            _logger.warning("breakdown: missing expected key %r", key)
    return PerformanceScore(
        overall_score=to_float(raw.get("overall_score")),
        grade=str(raw.get("grade") or "N/A"),
        breakdown=ScoreBreakdown(**{k: to_float(breakdown.get(k)) for k in _BREAKDOWN_KEYS}),
        percentile=to_opt_float(raw.get("percentile")),
    )


def normalize_conditions(raw: Any) -> SessionConditions | None:
    if raw is None:
        return None
    raw = _as_mapping(raw, "session_conditions")
    return SessionConditions(
        track_condition=str(raw.get("track_condition") or DEFAULT_TRACK_CONDITION),
        track_temperature=to_opt_float(raw.get("track_temperature")),
    )


def normalize_result(raw: Any) -> AnalysisResult:
    """Normalize a full ``/api/v1/analyze`` response body into an :class:`AnalysisResult`.

    Transport-level fields such as ``success`` are not part of the result.
    """
    raw = _as_mapping(raw, "result")
    plots = _as_mapping(raw.get("plots", {}), "plots")
    statistics = _as_mapping(raw.get("statistics", {}), "statistics")
    lap_times = raw.get("lap_times")
    if lap_times is not None and not isinstance(lap_times, list):
        _logger.warning("lap_times: expected a list, got %s", type(lap_times).__name__)
        lap_times = None

    return AnalysisResult(
        analysis_id=str(raw.get("analysis_id") or ""),
        timestamp=str(raw.get("timestamp") or ""),
        corners_detected=max(to_int(raw.get("corners_detected")), 0),
        lap_time=max(to_float(raw.get("lap_time")), 0.0),
        performance_score=normalize_score(raw.get("performance_score", {})),
        corner_analysis=[
            normalize_corner(c)
            for c in _as_list(raw.get("corner_analysis"), "corner_analysis")
        ],
        coaching_advice=[
            normalize_advice(a)
            for a in _as_list(raw.get("coaching_advice"), "coaching_advice")
        ],
        plots={str(k): (None if v is None else str(v)) for k, v in plots.items()},
        statistics=dict(statistics),
        best_lap_time=to_opt_float(raw.get("best_lap_time")),
        avg_lap_time=to_opt_float(raw.get("avg_lap_time")),
        lap_times=None if lap_times is None else [to_float(t) for t in lap_times],
        session_conditions=normalize_conditions(raw.get("session_conditions")),
    )
