"""Markdown report formatter for analysis results."""

from __future__ import annotations

from pathlib import Path

from apex_coach.api.models import AnalysisResult, CoachingAdvice, CornerAnalysis
from apex_coach.reporting.scores import BREAKDOWN_MAX, display_score, score_badge

_BREAKDOWN_LABEL: dict[str, str] = {
    "apex_precision": "Apex precision",
    "trajectory_consistency": "Trajectory consistency",
    "apex_speed": "Apex speed",
    "sector_times": "Sector times",
}

_DIFFICULTY_LABEL: dict[str, str] = {
    "facile": "easy",
    "moyen": "medium",
    "difficile": "hard",
}


def _format_lap_time(seconds: float | None) -> str:
    if not seconds:
        return "n/a"
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}:{rest:06.3f}" if minutes else f"{rest:.3f}s"


def _format_corner_row(c: CornerAnalysis) -> str:
    return (
        f"| {c.corner_number} | {c.corner_type} | {c.grade} | {c.score:.0f} "
        f"| {c.apex_speed_real:.1f} / {c.apex_speed_optimal:.1f} "
        f"| {c.apex_distance_error:.2f}m {c.apex_direction_error} "
        f"| {c.time_lost:+.3f}s |"
    )


def _format_advice(i: int, a: CoachingAdvice) -> list[str]:
    where = f"Corner {a.corner}" if a.corner is not None else "Global"
    difficulty = _DIFFICULTY_LABEL.get(a.difficulty, a.difficulty)
    lines = [f"{i}. **{where}** [{a.category}, {difficulty}, -{a.impact_seconds:.2f}s]: {a.message}"]
    if a.explanation:
        lines.append(f"   {a.explanation}")
    return lines


class MarkdownFormatter:
    """Format an :class:`~apex_coach.api.models.AnalysisResult` as Markdown."""

    def format(self, result: AnalysisResult) -> str:
        """Return the full Markdown report as a string."""
        ps = result.performance_score
        score = display_score(ps)
        lines: list[str] = []

        # Header
        lines += [
            "# Session analysis report",
            "",
            f"**Analysis**: {result.analysis_id}  ",
            f"**Date**: {result.timestamp or 'n/a'}  ",
            f"**Lap time**: {_format_lap_time(result.lap_time)}  ",
        ]
        if result.best_lap_time:
            lines.append(f"**Best lap**: {_format_lap_time(result.best_lap_time)}  ")
        if result.session_conditions:
            sc = result.session_conditions
            temp = f", {sc.track_temperature:g}°C" if sc.track_temperature is not None else ""
            lines.append(f"**Conditions**: {sc.track_condition}{temp}  ")
        lines.append(f"**Corners detected**: {result.corners_detected}")
        lines.append("")

        # Score
        lines += [
            "## Performance score",
            "",
            f"**{score:g}/100** · grade {ps.grade} · {score_badge(score)}",
            "",
            "| Category | Score | Max |",
            "|----------|-------|-----|",
        ]
        for name, maximum in BREAKDOWN_MAX.items():
            lines.append(
                f"| {_BREAKDOWN_LABEL[name]} | {getattr(ps.breakdown, name):g} | {maximum:g} |"
            )
        lines.append("")

        # Per-corner analysis
        if result.corner_analysis:
            lines += [
                "## Corners",
                "",
                "| # | Type | Grade | Score | Apex speed (real / optimal) | Apex error | Time lost |",
                "|---|------|-------|-------|-----------------------------|------------|-----------|",
            ]
            lines += [_format_corner_row(c) for c in result.corner_analysis]
            lines.append("")

        # Coaching advice, backend order
        if result.coaching_advice:
            lines += ["## Coaching advice", ""]
            for i, a in enumerate(result.coaching_advice, 1):
                lines.extend(_format_advice(i, a))
            lines.append("")

        plots = {name: url for name, url in result.plots.items() if url}
        if plots:
            lines += ["## Plots", ""]
            lines += [f"- [{name}]({url})" for name, url in sorted(plots.items())]
            lines.append("")

        return "\n".join(lines)

    def write(self, result: AnalysisResult, path: str | Path) -> None:
        """Write the formatted report to *path* (UTF-8)."""
        Path(path).write_text(self.format(result), encoding="utf-8")
