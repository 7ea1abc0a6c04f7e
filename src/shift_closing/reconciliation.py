"""Actual collections per island and their variance against expected amounts."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from shift_closing.expected import IslandExpectedCollection
from shift_closing.money import ZERO, parse_amount, round2

logger = structlog.get_logger(__name__)

# Meter and till rounding noise absorbed as an exact match. Fixed for every station.
VARIANCE_TOLERANCE = Decimal("4")


class PaymentMethod(str, Enum):
    """How money was collected at an island."""

    CASH = "cash"
    MOBILE_MONEY = "mobile_money"
    VISA = "visa"
    MASTERCARD = "mastercard"
    DEBT = "debt"
    OTHER = "other"

    @property
    def wire_key(self) -> str:
        return _WIRE_KEYS[self]

    @classmethod
    def parse(cls, value: PaymentMethod | str) -> PaymentMethod:
        """Accept an enum member, its value, or its wire key (``cashAmount``)."""
        if isinstance(value, cls):
            return value
        text = str(value)
        for method in cls:
            if text in (method.value, method.wire_key, method.name):
                return method
        raise ValueError(f"Unknown payment method: {value!r}")


_WIRE_KEYS = {
    PaymentMethod.CASH: "cashAmount",
    PaymentMethod.MOBILE_MONEY: "mobileMoneyAmount",
    PaymentMethod.VISA: "visaAmount",
    PaymentMethod.MASTERCARD: "mastercardAmount",
    PaymentMethod.DEBT: "debtAmount",
    PaymentMethod.OTHER: "otherAmount",
}


class VarianceStatus(str, Enum):
    EXACT = "exact"
    OVER = "over"
    UNDER = "under"


@dataclass(frozen=True)
class VarianceResult:
    expected: Decimal
    collected: Decimal
    variance: Decimal
    status: VarianceStatus
    percent: Decimal

    @property
    def is_exact(self) -> bool:
        return self.status == VarianceStatus.EXACT


def classify_variance(expected: Decimal, collected: Decimal) -> VarianceResult:
    """Compare collected money with what the meters say should be there.

    ``variance = collected - expected``. Anything within the tolerance
    (boundaries included) is exact; beyond it the island is over or under.
    """
    variance = collected - expected
    if abs(variance) <= VARIANCE_TOLERANCE:
        status = VarianceStatus.EXACT
    elif variance > 0:
        status = VarianceStatus.OVER
    else:
        status = VarianceStatus.UNDER

    percent = round2(abs(variance) / expected * 100) if expected > 0 else ZERO
    return VarianceResult(
        expected=expected,
        collected=collected,
        variance=variance,
        status=status,
        percent=percent,
    )


@dataclass
class IslandActualCollection:
    """Money actually collected at one island, by payment method."""

    island_id: str
    amounts: dict[PaymentMethod, Decimal] = field(
        default_factory=lambda: {method: ZERO for method in PaymentMethod}
    )

    @property
    def total_collected(self) -> Decimal:
        return sum(self.amounts.values(), ZERO)

    def amount(self, method: PaymentMethod) -> Decimal:
        return self.amounts.get(method, ZERO)

    @property
    def has_amounts(self) -> bool:
        return any(value != 0 for value in self.amounts.values())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"islandId": self.island_id}
        for method in PaymentMethod:
            data[method.wire_key] = self.amount(method)
        return data


@dataclass(frozen=True)
class IslandVariance:
    island_id: str
    island_name: str
    result: VarianceResult


class CollectionsLedger:
    """Per-island actual collections for the closing session.

    Variances are never stored; they are derived from the ledger and the
    expected collections on every call.
    """

    def __init__(self) -> None:
        self._collections: dict[str, IslandActualCollection] = {}
        self._logger = logger.bind(component="collections_ledger")

    @property
    def collections(self) -> dict[str, IslandActualCollection]:
        return self._collections

    def record_actual_collection(
        self, island_id: str, method: PaymentMethod | str, amount: Any
    ) -> IslandActualCollection:
        """Store the amount collected at an island with one payment method."""
        payment_method = PaymentMethod.parse(method)
        collection = self._collections.get(island_id)
        if collection is None:
            collection = IslandActualCollection(island_id=island_id)
            self._collections[island_id] = collection
        collection.amounts[payment_method] = parse_amount(amount)
        return collection

    def collection_for(self, island_id: str) -> IslandActualCollection | None:
        return self._collections.get(island_id)

    def total_collected(self) -> Decimal:
        return sum((c.total_collected for c in self._collections.values()), ZERO)

    def total_collected_debt(self) -> Decimal:
        """Debt recorded across every island; the amount to allocate to debtors."""
        return sum((c.amount(PaymentMethod.DEBT) for c in self._collections.values()), ZERO)

    def variance_by_island(
        self, expected: Iterable[IslandExpectedCollection]
    ) -> list[IslandVariance]:
        """Variance for every expected island, then for any extra island with collections."""
        result: list[IslandVariance] = []
        seen: set[str] = set()
        for island in expected:
            seen.add(island.island_id)
            collection = self._collections.get(island.island_id)
            collected = collection.total_collected if collection else ZERO
            result.append(
                IslandVariance(
                    island_id=island.island_id,
                    island_name=island.island_name,
                    result=classify_variance(island.total_expected, collected),
                )
            )
        for island_id, collection in self._collections.items():
            if island_id in seen:
                continue
            self._logger.debug("collection_for_unexpected_island", island_id=island_id)
            result.append(
                IslandVariance(
                    island_id=island_id,
                    island_name="",
                    result=classify_variance(ZERO, collection.total_collected),
                )
            )
        return result

    def grand_total(self, expected: Iterable[IslandExpectedCollection]) -> VarianceResult:
        """Aggregate variance across all islands."""
        expected_total = sum((i.total_expected for i in expected), ZERO)
        return classify_variance(expected_total, self.total_collected())

    def snapshot(self) -> dict[str, dict[str, str]]:
        return {
            island_id: {method.value: str(value) for method, value in c.amounts.items()}
            for island_id, c in self._collections.items()
        }

    def restore(self, snapshot: dict[str, dict[str, Any]]) -> None:
        for island_id, amounts in snapshot.items():
            for method, value in amounts.items():
                self.record_actual_collection(island_id, method, value)
