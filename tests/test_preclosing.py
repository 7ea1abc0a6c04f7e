"""Tests for pre-closing checks."""

from dataclasses import replace
from datetime import UTC, datetime

from shift_closing.models import ShiftStatus
from shift_closing.preclosing import check_pre_closing


def test_open_shift_passes(shift):
    report = check_pre_closing(shift, datetime(2026, 10, 19, 18, 0, tzinfo=UTC))

    assert report.is_valid
    assert report.issues == []
    assert report.warnings == []


def test_no_shift():
    report = check_pre_closing(None, datetime(2026, 10, 19, 18, 0, tzinfo=UTC))

    assert not report.is_valid
    assert report.issues == ["No open shift found for this station"]


def test_closed_shift_without_readings(shift):
    closed = replace(shift, status=ShiftStatus.CLOSED, meter_readings=(), dip_readings=())

    report = check_pre_closing(closed, datetime(2026, 10, 19, 18, 0, tzinfo=UTC))

    assert len(report.issues) == 3
    assert "CLOSED" in report.issues[0]


def test_short_and_long_shifts_only_warn(shift):
    short = check_pre_closing(shift, datetime(2026, 10, 19, 6, 30, tzinfo=UTC))
    long = check_pre_closing(shift, datetime(2026, 10, 20, 7, 0, tzinfo=UTC))

    assert short.is_valid and "less than 1 hour" in short.warnings[0]
    assert long.is_valid and "more than 24 hours" in long.warnings[0]
