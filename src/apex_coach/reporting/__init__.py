"""Display values, comparisons and report output."""

from apex_coach.reporting.compare import AnalysisComparison, CornerDelta, compare_analyses
from apex_coach.reporting.formatter import MarkdownFormatter
from apex_coach.reporting.scores import (
    BREAKDOWN_MAX,
    AggregateStatistics,
    aggregate_statistics,
    breakdown_ratios,
    display_score,
    is_known_grade,
    score_badge,
)

__all__ = [
    "BREAKDOWN_MAX",
    "AggregateStatistics",
    "AnalysisComparison",
    "CornerDelta",
    "MarkdownFormatter",
    "aggregate_statistics",
    "breakdown_ratios",
    "compare_analyses",
    "display_score",
    "is_known_grade",
    "score_badge",
]
