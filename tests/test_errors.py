"""Tests for ApexError."""

import pytest

from apex_coach.errors import ERROR_HINTS, ERROR_KINDS, HTTP_ERROR, TIMEOUT, ApexError


def test_every_kind_has_a_hint():
    assert set(ERROR_HINTS) == set(ERROR_KINDS)


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        ApexError("kaboom", "nope")


def test_fields_and_str():
    err = ApexError(TIMEOUT, "The request timed out (30s).")
    assert err.kind == TIMEOUT
    assert err.message == "The request timed out (30s)."
    assert str(err) == err.message
    assert err.details is None
    assert err.hint == ERROR_HINTS[TIMEOUT]


def test_to_dict_includes_details_only_when_present():
    assert ApexError(TIMEOUT, "slow").to_dict() == {"kind": "timeout", "message": "slow"}
    err = ApexError(HTTP_ERROR, "bad", {"status_code": 400})
    assert err.to_dict() == {"kind": "http_error", "message": "bad", "details": {"status_code": 400}}
