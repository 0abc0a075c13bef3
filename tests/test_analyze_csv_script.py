"""Failure paths of scripts/analyze_csv.py: clean message and exit code 1."""

from __future__ import annotations

import pytest

from scripts import analyze_csv


def _run(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr("sys.argv", ["analyze_csv.py", *argv])
    analyze_csv.main()


def test_missing_csv_exits_cleanly(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, str(tmp_path / "nope.csv"), "--db", str(tmp_path / "apex.db"))
    assert excinfo.value.code == 1
    err = capsys.readouterr().err
    assert "Cannot read" in err
    assert "nope.csv" in err


def test_list_with_unavailable_store_exits_cleanly(monkeypatch, capsys, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--list", "--db", str(tmp_path / "missing-dir" / "apex.db"))
    assert excinfo.value.code == 1
    assert "Cannot open result store" in capsys.readouterr().err


def test_list_read_failure_exits_cleanly(monkeypatch, capsys, tmp_path):
    def broken(self, identity=None):
        raise analyze_csv.ApexError("storage_unavailable", "Storage unavailable: disk I/O error")

    monkeypatch.setattr(analyze_csv.AnalysisStore, "list_summaries", broken)
    with pytest.raises(SystemExit) as excinfo:
        _run(monkeypatch, "--list", "--db", str(tmp_path / "apex.db"))
    assert excinfo.value.code == 1
    assert "disk I/O error" in capsys.readouterr().err


def test_list_empty_store(monkeypatch, capsys, tmp_path):
    _run(monkeypatch, "--list", "--db", str(tmp_path / "apex.db"))
    assert "No saved analyses." in capsys.readouterr().out
