"""Tests for validate_csv."""

from __future__ import annotations

import pytest

from apex_coach.api.validator import (
    MAX_FILE_SIZE_BYTES,
    MIN_FILE_SIZE_BYTES,
    CsvUpload,
    validate_csv,
)


def _upload(name: str = "session.csv", size: int = 2048) -> CsvUpload:
    return CsvUpload(filename=name, content=b"x" * size)


@pytest.mark.parametrize("name", ["session.txt", "session.csv.zip", "session", "csv", "data.xlsx"])
def test_rejects_non_csv_extension(name):
    result = validate_csv(_upload(name))
    assert result.valid is False
    assert "CSV" in result.error


def test_extension_is_case_insensitive():
    assert validate_csv(_upload("SESSION.CSV")).valid is True


def test_extension_checked_before_size():
    result = validate_csv(_upload("tiny.txt", size=10))
    assert "CSV" in result.error


def test_accepts_typical_file():
    result = validate_csv(_upload(size=2048))
    assert result.valid is True
    assert result.error is None


def test_exactly_min_size_is_valid():
    assert validate_csv(_upload(size=MIN_FILE_SIZE_BYTES)).valid is True


def test_below_min_size_is_invalid():
    result = validate_csv(_upload(size=MIN_FILE_SIZE_BYTES - 1))
    assert result.valid is False
    assert "too small" in result.error


def test_exactly_max_size_is_valid():
    assert validate_csv(_upload(size=MAX_FILE_SIZE_BYTES)).valid is True


def test_above_max_size_is_invalid_and_reports_size():
    result = validate_csv(_upload(size=MAX_FILE_SIZE_BYTES + 1))
    assert result.valid is False
    assert "too large" in result.error
    assert "50.00MB" in result.error


def test_custom_max_size():
    result = validate_csv(_upload(size=5000), max_size_bytes=4096)
    assert result.valid is False


def test_from_path_reads_name_and_bytes(tmp_path):
    p = tmp_path / "lap.csv"
    p.write_bytes(b"a,b\n1,2\n")
    upload = CsvUpload.from_path(p)
    assert upload.filename == "lap.csv"
    assert upload.size == 8
