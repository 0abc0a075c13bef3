"""AnalysisService: submit then save, with save failures kept off the result path."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from apex_coach.api.validator import CsvUpload
from apex_coach.errors import NETWORK, STORAGE_UNAVAILABLE, UNKNOWN, ApexError
from apex_coach.storage.backends import MemoryBackend
from apex_coach.storage.store import AnalysisStore
from apex_coach.web.service import AnalysisService
from tests.factories import csv_bytes, make_result

_UPLOAD = CsvUpload(filename="session.csv", content=csv_bytes())


def _client(result=None, error=None) -> MagicMock:
    client = MagicMock()
    client.submit.return_value = result or make_result()
    if error is not None:
        client.submit.side_effect = error
    return client


def test_run_analysis_saves_result():
    store = AnalysisStore(MemoryBackend())
    outcome = AnalysisService(_client(), store).run_analysis(_UPLOAD, identity="u1")
    assert outcome.saved is True
    assert outcome.saved_id == "abc123"
    assert store.exists("abc123", "u1")


def test_run_analysis_forwards_options():
    client = _client()
    AnalysisService(client).run_analysis(
        _UPLOAD, lap_filter=[3], track_condition="rain", track_temperature=11.0
    )
    client.submit.assert_called_once_with(
        _UPLOAD, lap_filter=[3], track_condition="rain", track_temperature=11.0
    )


def test_run_analysis_without_store():
    outcome = AnalysisService(_client()).run_analysis(_UPLOAD)
    assert outcome.saved is False
    assert outcome.save_error is None
    assert outcome.result.analysis_id == "abc123"


def test_save_failure_is_reported_not_raised(caplog):
    store = AnalysisStore(MemoryBackend(enabled=False))
    with caplog.at_level(logging.WARNING, logger="apex_coach.web.service"):
        outcome = AnalysisService(_client(), store).run_analysis(_UPLOAD, identity="u1")
    assert outcome.saved is False
    assert outcome.save_error.kind == STORAGE_UNAVAILABLE
    assert outcome.result.performance_score.grade == "B"
    assert "Auto-save" in caplog.text


def test_submit_failure_propagates_and_nothing_is_saved():
    backend = MemoryBackend()
    store = AnalysisStore(backend)
    service = AnalysisService(_client(error=ApexError(NETWORK, "down")), store)
    with pytest.raises(ApexError) as excinfo:
        service.run_analysis(_UPLOAD, identity="u1")
    assert excinfo.value.kind == NETWORK
    assert backend.keys() == []


def test_unexpected_save_exception_is_reported_not_raised(caplog):
    store = MagicMock()
    store.save.side_effect = OverflowError("cannot convert float infinity to integer")
    with caplog.at_level(logging.ERROR, logger="apex_coach.web.service"):
        outcome = AnalysisService(_client(), store).run_analysis(_UPLOAD, identity="u1")
    assert outcome.saved is False
    assert outcome.save_error.kind == UNKNOWN
    assert "infinity" in outcome.save_error.message
    assert outcome.result.analysis_id == "abc123"
    assert "failed unexpectedly" in caplog.text
