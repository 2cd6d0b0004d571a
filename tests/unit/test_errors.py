"""
Unit tests for the error taxonomy.
"""

import pytest

from castengine.errors import (
    AlreadyActivatedError,
    EngineError,
    ErrorCategory,
    ErrorKind,
    InvalidConfigError,
    InvalidScheduleError,
    NoPlayableContentError,
    NotFoundError,
    NotLiveError,
    PlayerTimeoutError,
    SessionBusyError,
    StartFailedError,
)


@pytest.mark.unit
class TestErrorTaxonomy:
    """Tests for error kinds and categories."""

    @pytest.mark.parametrize(
        "error_class,category",
        [
            (InvalidConfigError, ErrorCategory.INPUT),
            (InvalidScheduleError, ErrorCategory.INPUT),
            (NotLiveError, ErrorCategory.STATE),
            (AlreadyActivatedError, ErrorCategory.STATE),
            (SessionBusyError, ErrorCategory.STATE),
            (StartFailedError, ErrorCategory.EXTERNAL),
            (PlayerTimeoutError, ErrorCategory.EXTERNAL),
            (NoPlayableContentError, ErrorCategory.EXTERNAL),
            (NotFoundError, ErrorCategory.LOOKUP),
        ],
    )
    def test_category(self, error_class, category):
        assert error_class("x").category == category

    def test_every_kind_has_a_category(self):
        for kind in ErrorKind:
            assert isinstance(kind.category, ErrorCategory)

    def test_to_dict(self):
        error = NotLiveError("Session abc is starting, not live")

        assert error.to_dict() == {
            "error": "not_live",
            "message": "Session abc is starting, not live",
        }

    def test_cause_is_kept(self):
        cause = ValueError("bad")
        error = StartFailedError("could not start", cause=cause)

        assert error.cause is cause
        assert isinstance(error, EngineError)
        assert str(error) == "could not start"
