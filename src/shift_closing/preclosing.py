"""Checks run before the closing wizard lets the operator start entering data."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from shift_closing.models import Shift

MIN_SHIFT_DURATION = timedelta(hours=1)
MAX_SHIFT_DURATION = timedelta(hours=24)


@dataclass(frozen=True)
class PreClosingReport:
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def check_pre_closing(shift: Shift | None, now: datetime) -> PreClosingReport:
    """Verify the shift can be closed.

    Issues block the wizard; warnings about unusual shift durations are
    only shown to the operator.
    """
    if shift is None:
        return PreClosingReport(issues=["No open shift found for this station"])

    issues: list[str] = []
    warnings: list[str] = []

    if not shift.is_open:
        issues.append(f"Shift is {shift.status.value}, only OPEN shifts can be closed")
    if not shift.meter_readings:
        issues.append("No opening pump meter readings recorded")
    if not shift.dip_readings:
        issues.append("No opening tank dip readings recorded")

    if shift.start_time is not None:
        duration = now - shift.start_time
        hours = duration.total_seconds() / 3600
        if duration < MIN_SHIFT_DURATION:
            warnings.append(f"Shift has been open for less than 1 hour ({hours:.1f}h)")
        elif duration > MAX_SHIFT_DURATION:
            warnings.append(f"Shift has been open for more than 24 hours ({hours:.1f}h)")

    return PreClosingReport(issues=issues, warnings=warnings)
