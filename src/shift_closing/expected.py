"""Expected money per island, derived from closing meters and resolved prices."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from shift_closing.assets import StationTopology
from shift_closing.money import ZERO, round2
from shift_closing.pricing import PriceResolver
from shift_closing.readings import PumpClosingReading


@dataclass(frozen=True)
class PumpExpectedContribution:
    """What one pump should have brought in during the shift."""

    pump_id: str
    pump_name: str
    product_id: str | None
    opening_electric: Decimal
    closing_electric: Decimal
    opening_manual: Decimal
    closing_manual: Decimal
    electric_delta: Decimal
    manual_delta: Decimal
    average_sales: Decimal
    unit_price: Decimal
    price_status: str
    expected_collection: Decimal


@dataclass(frozen=True)
class IslandExpectedCollection:
    island_id: str
    island_name: str
    island_code: str | None = None
    pumps: tuple[PumpExpectedContribution, ...] = field(default_factory=tuple)
    total_expected: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "islandId": self.island_id,
            "islandName": self.island_name,
            "islandCode": self.island_code,
            "totalExpected": self.total_expected,
            "pumps": [
                {
                    "pumpId": p.pump_id,
                    "pumpName": p.pump_name,
                    "electricDelta": p.electric_delta,
                    "manualDelta": p.manual_delta,
                    "averageSales": p.average_sales,
                    "unitPrice": p.unit_price,
                    "expectedCollection": p.expected_collection,
                }
                for p in self.pumps
            ],
        }


def calculate_expected_collections(
    topology: StationTopology,
    pump_readings: Mapping[str, PumpClosingReading],
    resolver: PriceResolver,
) -> list[IslandExpectedCollection]:
    """Compute expected collections for every island, in topology order.

    The average of the electric and manual meter deltas is priced with the
    resolver; a pump without a closing reading contributes nothing. Each pump
    is rounded to the cent before the island total is summed and rounded.
    """
    result: list[IslandExpectedCollection] = []
    for island in topology.islands:
        contributions: list[PumpExpectedContribution] = []
        for pump in island.pumps:
            reading = pump_readings.get(pump.pump_id)
            if reading is None:
                continue

            electric_delta = reading.electric_delta
            manual_delta = reading.manual_delta
            average = (electric_delta + manual_delta) / 2
            price = resolver.resolve_unit_price(pump.product_id)

            contributions.append(
                PumpExpectedContribution(
                    pump_id=pump.pump_id,
                    pump_name=pump.pump_name,
                    product_id=pump.product_id,
                    opening_electric=reading.opening_electric,
                    closing_electric=reading.electric_meter,
                    opening_manual=reading.opening_manual,
                    closing_manual=reading.manual_meter,
                    electric_delta=electric_delta,
                    manual_delta=manual_delta,
                    average_sales=average,
                    unit_price=price.unit_price,
                    price_status=price.price_status,
                    expected_collection=round2(average * price.unit_price),
                )
            )

        result.append(
            IslandExpectedCollection(
                island_id=island.island_id,
                island_name=island.island_name,
                island_code=island.island_code,
                pumps=tuple(contributions),
                total_expected=round2(
                    sum((c.expected_collection for c in contributions), ZERO)
                ),
            )
        )
    return result


def total_expected(collections: Iterable[IslandExpectedCollection]) -> Decimal:
    return round2(sum((c.total_expected for c in collections), ZERO))
