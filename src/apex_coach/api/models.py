"""Canonical analysis data models.

These are the shapes every backend response is normalized into
(see :mod:`apex_coach.api.normalizer`) and the shapes the result store
persists.  ``from_dict`` constructors are strict: they expect canonical
keys and raise ``KeyError``/``TypeError``/``ValueError`` on malformed input.
Use the normalizer for raw backend payloads.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

TRACK_CONDITIONS = ("dry", "damp", "wet", "rain")
DEFAULT_TRACK_CONDITION = "dry"


def _opt_float(value) -> float | None:
    return None if value is None else float(value)


@dataclass
class ScoreBreakdown:
    """The four sub-scores of a :class:`PerformanceScore`.

    Maxima are 30 / 25 / 25 / 20 (see
    :data:`apex_coach.reporting.scores.BREAKDOWN_MAX`).
    """

    apex_precision: float = 0.0
    trajectory_consistency: float = 0.0
    apex_speed: float = 0.0
    sector_times: float = 0.0

    def total(self) -> float:
        return (
            self.apex_precision
            + self.trajectory_consistency
            + self.apex_speed
            + self.sector_times
        )

    @classmethod
    def from_dict(cls, d: dict) -> ScoreBreakdown:
        return cls(
            apex_precision=float(d["apex_precision"]),
            trajectory_consistency=float(d["trajectory_consistency"]),
            apex_speed=float(d["apex_speed"]),
            sector_times=float(d["sector_times"]),
        )


@dataclass
class PerformanceScore:
    """Overall score (0-100) with letter grade and breakdown."""

    overall_score: float
    grade: str
    breakdown: ScoreBreakdown = field(default_factory=ScoreBreakdown)
    percentile: float | None = None

    @classmethod
    def from_dict(cls, d: dict) -> PerformanceScore:
        return cls(
            overall_score=float(d["overall_score"]),
            grade=str(d["grade"]),
            breakdown=ScoreBreakdown.from_dict(d["breakdown"]),
            percentile=_opt_float(d.get("percentile")),
        )


@dataclass
class CornerAnalysis:
    """Per-corner analysis as computed by the backend."""

    corner_id: int
    corner_number: int
    corner_type: str = "unknown"
    apex_speed_real: float = 0.0
    apex_speed_optimal: float = 0.0
    speed_efficiency: float = 0.0
    apex_distance_error: float = 0.0
    apex_direction_error: str = "center"
    lateral_g_max: float = 0.0
    time_lost: float = 0.0
    grade: str = "C"
    score: float = 50.0
    entry_speed: float | None = None
    exit_speed: float | None = None
    target_entry_speed: float | None = None
    target_exit_speed: float | None = None

    @classmethod
    def from_dict(cls, d: dict) -> CornerAnalysis:
        return cls(
            corner_id=int(d["corner_id"]),
            corner_number=int(d["corner_number"]),
            corner_type=str(d["corner_type"]),
            apex_speed_real=float(d["apex_speed_real"]),
            apex_speed_optimal=float(d["apex_speed_optimal"]),
            speed_efficiency=float(d["speed_efficiency"]),
            apex_distance_error=float(d["apex_distance_error"]),
            apex_direction_error=str(d["apex_direction_error"]),
            lateral_g_max=float(d["lateral_g_max"]),
            time_lost=float(d["time_lost"]),
            grade=str(d["grade"]),
            score=float(d["score"]),
            entry_speed=_opt_float(d.get("entry_speed")),
            exit_speed=_opt_float(d.get("exit_speed")),
            target_entry_speed=_opt_float(d.get("target_entry_speed")),
            target_exit_speed=_opt_float(d.get("target_exit_speed")),
        )


@dataclass
class CoachingAdvice:
    """A single coaching recommendation.

    ``category`` is one of ``braking``, ``apex``, ``speed``, ``trajectory``
    or ``global``; ``difficulty`` one of ``facile``, ``moyen``, ``difficile``.
    """

    priority: int = 5
    category: str = "global"
    impact_seconds: float = 0.0
    corner: int | None = None
    message: str = ""
    explanation: str = ""
    difficulty: str = "moyen"

    @classmethod
    def from_dict(cls, d: dict) -> CoachingAdvice:
        corner = d.get("corner")
        return cls(
            priority=int(d["priority"]),
            category=str(d["category"]),
            impact_seconds=float(d["impact_seconds"]),
            corner=None if corner is None else int(corner),
            message=str(d["message"]),
            explanation=str(d["explanation"]),
            difficulty=str(d["difficulty"]),
        )


@dataclass
class SessionConditions:
    track_condition: str = DEFAULT_TRACK_CONDITION
    track_temperature: float | None = None
    """Track temperature in °C, when the driver supplied one."""

    @classmethod
    def from_dict(cls, d: dict) -> SessionConditions:
        return cls(
            track_condition=str(d["track_condition"]),
            track_temperature=_opt_float(d.get("track_temperature")),
        )


@dataclass
class AnalysisResult:
    """Full analysis of one uploaded session, in canonical form.

    ``coaching_advice`` keeps the backend order (already sorted by priority).
    ``statistics`` is processing metadata passed through as received
    (``processing_time_seconds``, ``data_points``, ``best_corners``, ...).
    """

    analysis_id: str
    timestamp: str
    corners_detected: int
    lap_time: float
    performance_score: PerformanceScore
    corner_analysis: list[CornerAnalysis] = field(default_factory=list)
    coaching_advice: list[CoachingAdvice] = field(default_factory=list)
    plots: dict[str, str | None] = field(default_factory=dict)
    statistics: dict = field(default_factory=dict)
    best_lap_time: float | None = None
    avg_lap_time: float | None = None
    lap_times: list[float] | None = None
    session_conditions: SessionConditions | None = None

    def to_dict(self) -> dict:
        """Return a JSON-serializable dict (recursive via :func:`dataclasses.asdict`)."""
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> AnalysisResult:
        lap_times = d.get("lap_times")
        conditions = d.get("session_conditions")
        return cls(
            analysis_id=str(d["analysis_id"]),
            timestamp=str(d["timestamp"]),
            corners_detected=int(d["corners_detected"]),
            lap_time=float(d["lap_time"]),
            performance_score=PerformanceScore.from_dict(d["performance_score"]),
            corner_analysis=[CornerAnalysis.from_dict(c) for c in d["corner_analysis"]],
            coaching_advice=[CoachingAdvice.from_dict(a) for a in d["coaching_advice"]],
            plots=dict(d["plots"]),
            statistics=dict(d["statistics"]),
            best_lap_time=_opt_float(d.get("best_lap_time")),
            avg_lap_time=_opt_float(d.get("avg_lap_time")),
            lap_times=None if lap_times is None else [float(t) for t in lap_times],
            session_conditions=(
                None if conditions is None else SessionConditions.from_dict(conditions)
            ),
        )


@dataclass
class LapInfo:
    """One lap detected by the backend's segment preview."""

    lap_number: int
    lap_time_seconds: float
    points_count: int
    is_outlier: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> LapInfo:
        return cls(
            lap_number=int(d["lap_number"]),
            lap_time_seconds=float(d["lap_time_seconds"]),
            points_count=int(d["points_count"]),
            is_outlier=bool(d.get("is_outlier", False)),
        )


@dataclass
class AnalysisStatus:
    analysis_id: str
    status: str
    """``completed``, ``processing`` or ``failed``."""
    message: str | None = None


@dataclass
class BackendHealth:
    status: str
    version: str | None = None
    environment: str | None = None


@dataclass
class StoredAnalysis:
    """Persistence wrapper: the result plus its store-write time (epoch millis)."""

    id: str
    timestamp: int
    result: AnalysisResult

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> StoredAnalysis:
        return cls(
            id=str(d["id"]),
            timestamp=int(d["timestamp"]),
            result=AnalysisResult.from_dict(d["result"]),
        )


@dataclass
class AnalysisSummary:
    """Lightweight projection of a stored analysis, for listings."""

    id: str
    date: str
    timestamp: int
    score: int
    corner_count: int
    lap_time: float
    grade: str
    filename: str | None = None

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)
