"""Side-by-side comparison of two analyses of the same track."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field

from apex_coach.api.models import AnalysisResult, CornerAnalysis
from apex_coach.reporting.scores import display_score


@dataclass
class CornerDelta:
    """Change for one corner, ``other`` minus ``base``.

    Positive ``time_lost_delta`` means *other* lost more time in the corner.
    """

    corner_number: int
    score_delta: float
    time_lost_delta: float
    apex_speed_delta: float


@dataclass
class AnalysisComparison:
    base_id: str
    other_id: str
    score_delta: float
    """Display-score change (other − base)."""
    lap_time_delta: float | None
    """Lap time change in seconds; None when either lap time is unknown (0)."""
    corners: list[CornerDelta] = field(default_factory=list)
    only_in_base: list[int] = field(default_factory=list)
    only_in_other: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


def _by_number(corners: list[CornerAnalysis]) -> dict[int, CornerAnalysis]:
    # First occurrence wins if the backend repeats a corner number.
    mapping: dict[int, CornerAnalysis] = {}
    for c in corners:
        mapping.setdefault(c.corner_number, c)
    return mapping


def compare_analyses(base: AnalysisResult, other: AnalysisResult) -> AnalysisComparison:
    """Compare *other* against *base*, matching corners by ``corner_number``."""
    base_corners = _by_number(base.corner_analysis)
    other_corners = _by_number(other.corner_analysis)

    deltas = [
        CornerDelta(
            corner_number=number,
            score_delta=round(other_corners[number].score - b.score, 2),
            time_lost_delta=round(other_corners[number].time_lost - b.time_lost, 3),
            apex_speed_delta=round(
                other_corners[number].apex_speed_real - b.apex_speed_real, 2
            ),
        )
        for number, b in sorted(base_corners.items())
        if number in other_corners
    ]

    lap_time_delta = None
    if base.lap_time > 0 and other.lap_time > 0:
        lap_time_delta = round(other.lap_time - base.lap_time, 3)

    return AnalysisComparison(
        base_id=base.analysis_id,
        other_id=other.analysis_id,
        score_delta=round(
            display_score(other.performance_score) - display_score(base.performance_score), 1
        ),
        lap_time_delta=lap_time_delta,
        corners=deltas,
        only_in_base=sorted(set(base_corners) - set(other_corners)),
        only_in_other=sorted(set(other_corners) - set(base_corners)),
    )
