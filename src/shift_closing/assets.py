"""Station topology: islands, their pumps, and the tanks feeding them."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import structlog

from shift_closing.models import OpeningDipReading, OpeningMeterReading
from shift_closing.money import ZERO, parse_amount

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Pump:
    """A pump on an island, with the product it dispenses."""

    pump_id: str
    pump_name: str
    island_id: str
    product_id: str | None = None
    product_name: str | None = None
    tank_id: str | None = None
    start_reading: OpeningMeterReading | None = None


@dataclass(frozen=True)
class Island:
    """A forecourt island grouping pumps and attendants."""

    island_id: str
    island_name: str
    island_code: str | None = None
    pumps: tuple[Pump, ...] = ()
    attendant_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Tank:
    """An underground tank and the pumps it feeds."""

    tank_id: str
    tank_name: str
    product_id: str | None = None
    product_name: str | None = None
    capacity: Decimal = ZERO
    current_volume: Decimal = ZERO
    connected_pump_ids: tuple[str, ...] = ()
    latest_reading: OpeningDipReading | None = None


@dataclass(frozen=True)
class StationTopology:
    """Island -> pump -> tank structure for one shift."""

    islands: tuple[Island, ...] = ()
    tanks: tuple[Tank, ...] = ()
    attendants: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, structure: dict[str, Any]) -> StationTopology:
        """Build the topology from a shift assets structure response.

        A pump dispenses its connected tank's product when the tank has one;
        the pump's own product is only a fallback.
        """
        tanks: list[Tank] = []
        tank_by_pump: dict[str, Tank] = {}
        for raw_tank in structure.get("tanks") or []:
            product = raw_tank.get("product") or {}
            dip_readings = raw_tank.get("dipReadings") or []
            tank = Tank(
                tank_id=str(raw_tank.get("tankId") or raw_tank.get("id")),
                tank_name=str(raw_tank.get("tankName") or raw_tank.get("name") or ""),
                product_id=str(product["id"]) if product.get("id") else None,
                product_name=product.get("name"),
                capacity=parse_amount(raw_tank.get("capacity")),
                current_volume=parse_amount(raw_tank.get("currentVolume")),
                connected_pump_ids=tuple(
                    str(cp.get("pumpId")) for cp in raw_tank.get("connectedPumps") or []
                ),
                latest_reading=(
                    OpeningDipReading.from_api(
                        {"tankId": raw_tank.get("tankId"), **dip_readings[-1]}
                    )
                    if dip_readings
                    else None
                ),
            )
            tanks.append(tank)
            for pump_id in tank.connected_pump_ids:
                tank_by_pump.setdefault(pump_id, tank)

        islands: list[Island] = []
        for raw_island in structure.get("islands") or []:
            island_id = str(raw_island.get("islandId") or raw_island.get("id"))
            pumps: list[Pump] = []
            for raw_pump in raw_island.get("pumps") or []:
                pump_id = str(raw_pump.get("pumpId") or raw_pump.get("id"))
                own_product = raw_pump.get("product") or {}
                tank = tank_by_pump.get(pump_id)
                product_id = (tank.product_id if tank else None) or (
                    str(own_product["id"]) if own_product.get("id") else None
                )
                product_name = (tank.product_name if tank else None) or own_product.get("name")
                start = next(
                    (
                        r
                        for r in raw_pump.get("meterReadings") or []
                        if r.get("readingType") == "START"
                    ),
                    None,
                )
                pumps.append(
                    Pump(
                        pump_id=pump_id,
                        pump_name=str(raw_pump.get("pumpName") or raw_pump.get("name") or ""),
                        island_id=island_id,
                        product_id=product_id,
                        product_name=product_name,
                        tank_id=tank.tank_id if tank else None,
                        start_reading=(
                            OpeningMeterReading.from_api({"pumpId": pump_id, **start})
                            if start
                            else None
                        ),
                    )
                )
            islands.append(
                Island(
                    island_id=island_id,
                    island_name=str(raw_island.get("islandName") or raw_island.get("name") or ""),
                    island_code=raw_island.get("islandCode"),
                    pumps=tuple(pumps),
                    attendant_ids=tuple(
                        str(a.get("id") or a.get("userId"))
                        for a in raw_island.get("attendants") or []
                    ),
                )
            )

        topology = cls(
            islands=tuple(islands),
            tanks=tuple(tanks),
            attendants=tuple(structure.get("attendants") or ()),
        )
        logger.debug(
            "topology_loaded",
            islands=len(topology.islands),
            pumps=len(topology.all_pumps()),
            tanks=len(topology.tanks),
        )
        return topology

    def all_pumps(self) -> list[Pump]:
        return [pump for island in self.islands for pump in island.pumps]

    def pump(self, pump_id: str) -> Pump | None:
        return next((p for p in self.all_pumps() if p.pump_id == pump_id), None)

    def tank(self, tank_id: str) -> Tank | None:
        return next((t for t in self.tanks if t.tank_id == tank_id), None)

    def island(self, island_id: str) -> Island | None:
        return next((i for i in self.islands if i.island_id == island_id), None)

    def island_of(self, pump_id: str) -> Island | None:
        """Get the island a pump stands on."""
        return next(
            (i for i in self.islands if any(p.pump_id == pump_id for p in i.pumps)),
            None,
        )

    def tank_for_pump(self, pump_id: str) -> Tank | None:
        """Get the tank feeding a pump."""
        pump = self.pump(pump_id)
        if pump is None or pump.tank_id is None:
            return None
        return self.tank(pump.tank_id)

    def pumps_for_tank(self, tank_id: str) -> list[Pump]:
        """Get every pump fed by a tank."""
        return [p for p in self.all_pumps() if p.tank_id == tank_id]

    def pumps_by_island(self) -> dict[str, list[Pump]]:
        return {island.island_id: list(island.pumps) for island in self.islands}
