"""Building and validating the shift closing payload.

Both functions are pure: the wizard rebuilds the payload from its current
state every time it is read, and the validator only looks at the payload.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from shift_closing.expected import IslandExpectedCollection
from shift_closing.models import Recorder
from shift_closing.money import ZERO
from shift_closing.readings import PumpClosingReading, TankClosingReading
from shift_closing.reconciliation import IslandActualCollection, PaymentMethod

PRICING_USED = "dynamic"


@dataclass(frozen=True)
class ClosingState:
    """Everything captured during a closing session that goes into the payload."""

    shift_id: str | None
    end_time: datetime | None
    pump_readings: Mapping[str, PumpClosingReading] = field(default_factory=dict)
    tank_readings: Mapping[str, TankClosingReading] = field(default_factory=dict)
    collections: Mapping[str, IslandActualCollection] = field(default_factory=dict)
    expected: Iterable[IslandExpectedCollection] = ()


@dataclass(frozen=True)
class IslandCollectionEntry:
    island_id: str
    amounts: Mapping[PaymentMethod, Decimal]
    expected_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum(self.amounts.values(), ZERO)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"islandId": self.island_id}
        for method in PaymentMethod:
            data[method.wire_key] = self.amounts.get(method, ZERO)
        data["expectedAmount"] = self.expected_amount
        return data


@dataclass(frozen=True)
class PayloadMetadata:
    station_id: str | None
    total_pumps: int
    total_tanks: int
    total_islands: int
    generated_at: datetime
    pricing_used: str = PRICING_USED

    def to_dict(self) -> dict[str, Any]:
        return {
            "stationId": self.station_id,
            "totalPumps": self.total_pumps,
            "totalTanks": self.total_tanks,
            "totalIslands": self.total_islands,
            "generatedAt": self.generated_at.isoformat(),
            "pricingUsed": self.pricing_used,
        }


@dataclass(frozen=True)
class ClosingPayload:
    shift_id: str | None
    recorded_by_id: str | None
    end_time: datetime | None
    pump_readings: tuple[PumpClosingReading, ...]
    tank_readings: tuple[TankClosingReading, ...]
    island_collections: tuple[IslandCollectionEntry, ...]
    metadata: PayloadMetadata

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape the close-shift endpoint expects."""
        return {
            "shiftId": self.shift_id,
            "recordedById": self.recorded_by_id,
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "pumpReadings": [r.to_dict() for r in self.pump_readings],
            "tankReadings": [r.to_dict() for r in self.tank_readings],
            "islandCollections": [c.to_dict() for c in self.island_collections],
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PayloadSummary:
    pumps: int
    tanks: int
    islands: int
    total_sales: Decimal
    total_collections: Decimal
    total_liters: Decimal


def build_closing_payload(
    state: ClosingState,
    recorder: Recorder | None,
    station_id: str | None = None,
    generated_at: datetime | None = None,
) -> ClosingPayload:
    """Assemble the closing payload from captured state.

    Pumps without an electric meter, tanks without a dip value and islands
    without any collected amount are left out rather than sent as zeros.
    """
    expected_by_island = {e.island_id: e.total_expected for e in state.expected}

    pumps = tuple(replace(r) for r in state.pump_readings.values() if r.electric_meter != 0)
    tanks = tuple(replace(r) for r in state.tank_readings.values() if r.dip_value != 0)
    islands = tuple(
        IslandCollectionEntry(
            island_id=c.island_id,
            amounts=dict(c.amounts),
            expected_amount=expected_by_island.get(c.island_id, ZERO),
        )
        for c in state.collections.values()
        if c.has_amounts
    )

    return ClosingPayload(
        shift_id=state.shift_id,
        recorded_by_id=recorder.id if recorder else None,
        end_time=state.end_time,
        pump_readings=pumps,
        tank_readings=tanks,
        island_collections=islands,
        metadata=PayloadMetadata(
            station_id=station_id,
            total_pumps=len(pumps),
            total_tanks=len(tanks),
            total_islands=len(islands),
            generated_at=generated_at or datetime.now(UTC),
        ),
    )


def validate_closing_payload(payload: ClosingPayload) -> ValidationResult:
    """Check a payload is complete enough to close the shift.

    Variance and debt allocation are gated separately by the wizard.
    """
    errors: list[str] = []

    if not payload.shift_id:
        errors.append("Shift ID is required")
    if not payload.recorded_by_id:
        errors.append("Recorded By user ID is required")
    if payload.end_time is None:
        errors.append("End time is required")

    for index, reading in enumerate(payload.pump_readings, start=1):
        if not reading.pump_id:
            errors.append(f"Pump reading {index}: Pump ID is required")
        if reading.electric_meter < 0:
            errors.append(f"Pump {reading.pump_id}: Electric meter cannot be negative")
        if reading.unit_price <= 0:
            errors.append(f"Pump {reading.pump_id}: Unit price must be greater than 0")

    for index, reading in enumerate(payload.tank_readings, start=1):
        if not reading.tank_id:
            errors.append(f"Tank reading {index}: Tank ID is required")
        if reading.dip_value < 0:
            errors.append(f"Tank {reading.tank_id}: Dip value cannot be negative")

    return ValidationResult(is_valid=not errors, errors=errors)


def summarize_payload(payload: ClosingPayload) -> PayloadSummary:
    return PayloadSummary(
        pumps=len(payload.pump_readings),
        tanks=len(payload.tank_readings),
        islands=len(payload.island_collections),
        total_sales=sum((r.sales_value for r in payload.pump_readings), ZERO),
        total_collections=sum((c.total for c in payload.island_collections), ZERO),
        total_liters=sum((r.liters_dispensed for r in payload.pump_readings), ZERO),
    )
