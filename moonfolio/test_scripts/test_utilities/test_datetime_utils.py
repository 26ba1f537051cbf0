"""
Test datetime utilities.
All test is independent of the others, so help use pytest features.
"""
from datetime import datetime, timedelta, timezone

import pytest

from moonfolio.app.utils.datetime_utils import ensure_utc, from_unix_millis, utcnow


# ============================================================================
# TESTS: utcnow
# ============================================================================

def test_utcnow_is_aware_utc():
    result = utcnow()
    assert result.tzinfo == timezone.utc
    assert result.utcoffset().total_seconds() == 0


def test_utcnow_returns_current_time():
    before = datetime.now(timezone.utc)
    result = utcnow()
    after = datetime.now(timezone.utc)

    assert before <= result <= after


# ============================================================================
# TESTS: ensure_utc
# ============================================================================

def test_ensure_utc_on_naive_value():
    """SQLite hands back naive datetimes: they are read as UTC."""
    naive = datetime(2025, 1, 2, 3, 4, 5)
    assert ensure_utc(naive) == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_ensure_utc_converts_other_offsets():
    cet = timezone(timedelta(hours=1))
    result = ensure_utc(datetime(2025, 1, 2, 10, 0, tzinfo=cet))
    assert result == datetime(2025, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc


# ============================================================================
# TESTS: from_unix_millis
# ============================================================================

@pytest.mark.parametrize("millis,expected", [
    (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
    (1700000000000, datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
    ])
def test_from_unix_millis(millis, expected):
    assert from_unix_millis(millis) == expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
