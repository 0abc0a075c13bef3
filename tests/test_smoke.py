"""Smoke test to verify the toolchain works."""


def test_import_apex_coach():
    """Verify the apex_coach package can be imported."""
    import apex_coach

    assert apex_coach is not None


def test_subpackages_importable():
    """Verify all subpackages can be imported."""
    import apex_coach.api
    import apex_coach.reporting
    import apex_coach.storage

    assert apex_coach.api is not None
    assert apex_coach.storage is not None
    assert apex_coach.reporting is not None
