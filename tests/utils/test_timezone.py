"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import now_utc, to_utc, to_epoch_seconds, from_epoch_seconds


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        result = now_utc()
        assert result.tzinfo is not None

    def test_is_utc(self):
        """Result timezone must be specifically UTC."""
        result = now_utc()
        assert result.tzinfo == timezone.utc


class TestToUtc:
    """Tests for to_utc()."""

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        naive = datetime(2024, 1, 1, 12, 0, 0)
        with pytest.raises(ValueError, match="naive"):
            to_utc(naive)

    def test_converts_other_timezone(self):
        """Chicago 12:00 in January should become UTC 18:00."""
        # Chicago is UTC-6 in January (no DST)
        chicago = datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("America/Chicago"))
        result = to_utc(chicago)
        assert result.tzinfo == timezone.utc
        assert result.hour == 18

    def test_utc_passes_through(self):
        """UTC datetime should pass through unchanged."""
        utc_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        result = to_utc(utc_time)
        assert result.tzinfo == timezone.utc
        assert result.hour == 12


class TestEpochSeconds:
    """Tests for to_epoch_seconds() and from_epoch_seconds()."""

    def test_round_trips_whole_seconds(self):
        """A whole-second UTC datetime survives the trip."""
        dt = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        assert from_epoch_seconds(to_epoch_seconds(dt)) == dt

    def test_floors_fractional_seconds(self):
        """Microseconds are dropped, never rounded up."""
        dt = datetime(2024, 1, 1, 12, 0, 0, 999999, tzinfo=timezone.utc)
        assert to_epoch_seconds(dt) == to_epoch_seconds(dt.replace(microsecond=0))

    def test_other_timezone_is_same_instant(self):
        """Chicago 12:00 and UTC 18:00 are the same epoch second."""
        chicago = datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("America/Chicago"))
        utc_time = datetime(2024, 1, 1, 18, 0, 0, tzinfo=timezone.utc)
        assert to_epoch_seconds(chicago) == to_epoch_seconds(utc_time)

    def test_raises_on_naive(self):
        """Naive datetime must raise ValueError."""
        with pytest.raises(ValueError, match="naive"):
            to_epoch_seconds(datetime(2024, 1, 1, 12, 0, 0))

    def test_from_epoch_is_utc(self):
        result = from_epoch_seconds(0)
        assert result.tzinfo == timezone.utc
        assert result.year == 1970
