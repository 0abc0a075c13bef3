"""Display values derived from stored or freshly normalized results."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apex_coach.api.models import AnalysisSummary, PerformanceScore, ScoreBreakdown
from apex_coach.storage.store import round_half_up

_logger = logging.getLogger(__name__)

BREAKDOWN_MAX: dict[str, float] = {
    "apex_precision": 30.0,
    "trajectory_consistency": 25.0,
    "apex_speed": 25.0,
    "sector_times": 20.0,
}

KNOWN_GRADES = ("A+", "A", "B", "C", "D")

SCORE_TOLERANCE = 0.5

# (threshold, badge), checked top-down.
_BADGES = ((90, "ELITE"), (70, "PRO"), (50, "AMATEUR"))
_DEFAULT_BADGE = "ROOKIE"


@dataclass
class AggregateStatistics:
    """Totals over a list of summaries.  ``best_entry`` is None when empty."""

    total: int
    average_score: int
    best_score: int
    best_entry: AnalysisSummary | None


def display_score(score: PerformanceScore) -> float:
    """Score to show for *score*.

    Returns ``overall_score`` unless it differs from the breakdown sum by
    more than 0.5, in which case the sum (one decimal) is returned and a
    warning is logged.  The stored value is never changed.
    """
    total = score.breakdown.total()
    overall = score.overall_score
    if abs(total - overall) > SCORE_TOLERANCE:
        _logger.warning(
            "Score inconsistency: overall_score %s != sum(breakdown) %s; using sum",
            overall,
            total,
        )
        return round(total, 1)
    return overall


def aggregate_statistics(summaries: list[AnalysisSummary]) -> AggregateStatistics:
    """Count, average (rounded) and best score over *summaries*."""
    if not summaries:
        return AggregateStatistics(total=0, average_score=0, best_score=0, best_entry=None)
    best = max(summaries, key=lambda s: s.score)
    average = sum(s.score for s in summaries) / len(summaries)
    return AggregateStatistics(
        total=len(summaries),
        average_score=round_half_up(average),
        best_score=best.score,
        best_entry=best,
    )


def breakdown_ratios(breakdown: ScoreBreakdown) -> dict[str, float]:
    """Each sub-score as a fraction of its maximum, clamped to [0, 1]."""
    return {
        name: min(max(getattr(breakdown, name) / maximum, 0.0), 1.0)
        for name, maximum in BREAKDOWN_MAX.items()
    }


def score_badge(score: float) -> str:
    """``ELITE`` (≥90), ``PRO`` (≥70), ``AMATEUR`` (≥50) or ``ROOKIE``."""
    for threshold, badge in _BADGES:
        if score >= threshold:
            return badge
    return _DEFAULT_BADGE


def is_known_grade(grade: str) -> bool:
    return grade in KNOWN_GRADES
