"""Decimal helpers shared by the reading, collection and debt engines."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")


def round2(amount: Decimal) -> Decimal:
    """Round a monetary amount to 2 decimal places (half up)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw: Any) -> Decimal:
    """Parse operator or API input into a Decimal.

    Empty, malformed and non-finite input degrades to zero instead of
    raising, so a stray keystroke never blocks data entry.
    """
    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        value = raw
    else:
        text = str(raw).strip().replace(",", "")
        if not text:
            return ZERO
        try:
            value = Decimal(text)
        except (InvalidOperation, ValueError):
            return ZERO
    if not value.is_finite():
        return ZERO
    return value


def format_money(amount: Decimal, currency: str = "KES") -> str:
    """Format an amount for operator-facing messages."""
    return f"{currency} {round2(amount):,.2f}"
