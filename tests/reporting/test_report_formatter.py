"""Tests for the Markdown report formatter."""

from apex_coach.api.models import CoachingAdvice
from apex_coach.reporting.formatter import MarkdownFormatter
from tests.factories import make_result


def test_report_sections():
    text = MarkdownFormatter().format(make_result())
    assert text.startswith("# Session analysis report")
    assert "**Lap time**: 1:02.481" in text
    assert "**Conditions**: dry, 24.5°C" in text
    assert "**78/100** · grade B · PRO" in text
    assert "| Apex precision | 25 | 30 |" in text
    assert "| 1 | left | B | 72 |" in text
    assert "1. **Corner 1** [braking, easy, -0.20s]: Brake later into turn 1" in text
    assert "- [trajectory_2d](https://cdn.example.com/t.png)" in text
    assert "speed_heatmap" not in text


def test_report_shows_repaired_score():
    text = MarkdownFormatter().format(make_result(overall_score=95.0))
    assert "**78/100**" in text


def test_report_global_advice_and_explanation():
    result = make_result()
    result.coaching_advice = [
        CoachingAdvice(category="global", message="Look further ahead", explanation="Eyes up."),
    ]
    text = MarkdownFormatter().format(result)
    assert "1. **Global** [global, medium, -0.00s]: Look further ahead" in text
    assert "   Eyes up." in text


def test_report_omits_empty_sections():
    result = make_result(corners=[])
    result.coaching_advice = []
    result.plots = {}
    text = MarkdownFormatter().format(result)
    assert "## Corners" not in text
    assert "## Coaching advice" not in text
    assert "## Plots" not in text


def test_write(tmp_path):
    path = tmp_path / "report.md"
    MarkdownFormatter().write(make_result(), path)
    assert path.read_text(encoding="utf-8").startswith("# Session analysis report")
