"""Closing meter and dip capture.

Readings are typed in one keystroke at a time, so malformed input becomes
zero rather than an error; the payload validator catches anything that is
still wrong before the shift can be closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog

from shift_closing.assets import StationTopology
from shift_closing.models import Shift
from shift_closing.money import ZERO, parse_amount
from shift_closing.pricing import FALLBACK_PRICE, PriceInfo, PriceResolver

logger = structlog.get_logger(__name__)

# Liters per unit of dip on the station's calibration chart
DIP_TO_VOLUME_FACTOR = Decimal("10000")

DEFAULT_TEMPERATURE = Decimal("25.0")
DEFAULT_WATER_LEVEL = Decimal("0.0")
DEFAULT_DENSITY = Decimal("0.85")

PUMP_FIELDS = ("electric_meter", "manual_meter", "cash_meter")
PUMP_METER_FIELDS = ("electric_meter", "manual_meter")
TANK_FIELDS = ("dip_value", "volume", "temperature", "water_level", "density")

_FIELD_ALIASES = {
    "electricMeter": "electric_meter",
    "manualMeter": "manual_meter",
    "cashMeter": "cash_meter",
    "dipValue": "dip_value",
    "waterLevel": "water_level",
}


def _normalize_field(field: str, allowed: tuple[str, ...]) -> str:
    name = _FIELD_ALIASES.get(field, field)
    if name not in allowed:
        raise ValueError(f"Unknown reading field {field!r}; expected one of {allowed}")
    return name


def dip_to_volume(dip_value: Decimal) -> Decimal:
    return dip_value * DIP_TO_VOLUME_FACTOR


def volume_to_dip(volume: Decimal) -> Decimal:
    return volume / DIP_TO_VOLUME_FACTOR


@dataclass
class PumpClosingReading:
    """Closing meters for one pump plus the sales derived from them."""

    pump_id: str
    opening_electric: Decimal = ZERO
    opening_manual: Decimal = ZERO
    opening_cash: Decimal = ZERO
    electric_meter: Decimal = ZERO
    manual_meter: Decimal = ZERO
    cash_meter: Decimal = ZERO
    unit_price: Decimal = FALLBACK_PRICE.unit_price
    price_status: str = FALLBACK_PRICE.price_status
    liters_dispensed: Decimal = ZERO
    sales_value: Decimal = ZERO
    pump_name: str = ""
    island_id: str | None = None
    product_id: str | None = None

    @property
    def electric_delta(self) -> Decimal:
        return max(ZERO, self.electric_meter - self.opening_electric)

    @property
    def manual_delta(self) -> Decimal:
        return max(ZERO, self.manual_meter - self.opening_manual)

    def recalculate(self, price: PriceInfo) -> None:
        """Re-derive liters and sales value from the meters and a resolved price."""
        self.unit_price = price.unit_price
        self.price_status = price.price_status
        self.liters_dispensed = self.electric_delta
        self.sales_value = self.liters_dispensed * self.unit_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "pumpId": self.pump_id,
            "electricMeter": self.electric_meter,
            "manualMeter": self.manual_meter,
            "cashMeter": self.cash_meter,
            "litersDispensed": self.liters_dispensed,
            "salesValue": self.sales_value,
            "unitPrice": self.unit_price,
        }


@dataclass
class TankClosingReading:
    """Closing dip for one tank. Volume and dip value never diverge."""

    tank_id: str
    dip_value: Decimal = ZERO
    volume: Decimal = ZERO
    temperature: Decimal = DEFAULT_TEMPERATURE
    water_level: Decimal = DEFAULT_WATER_LEVEL
    density: Decimal = DEFAULT_DENSITY
    opening_dip: Decimal = ZERO
    opening_volume: Decimal = ZERO
    tank_name: str = ""

    @property
    def volume_change(self) -> Decimal:
        return self.volume - self.opening_volume

    def to_dict(self) -> dict[str, Any]:
        return {
            "tankId": self.tank_id,
            "dipValue": self.dip_value,
            "volume": self.volume,
            "temperature": self.temperature,
            "waterLevel": self.water_level,
            "density": self.density,
        }


class ReadingCapture:
    """Accumulates closing pump and tank readings for one shift.

    Each update touches only the reading keyed by the given pump or tank id;
    readings are created on first edit.
    """

    def __init__(
        self,
        topology: StationTopology,
        shift: Shift | None,
        resolver: PriceResolver,
    ):
        self._topology = topology
        self._shift = shift
        self._resolver = resolver
        self._pumps: dict[str, PumpClosingReading] = {}
        self._tanks: dict[str, TankClosingReading] = {}
        self._logger = logger.bind(component="reading_capture")

    @property
    def topology(self) -> StationTopology:
        return self._topology

    @property
    def shift(self) -> Shift | None:
        return self._shift

    @property
    def pump_readings(self) -> dict[str, PumpClosingReading]:
        return self._pumps

    @property
    def tank_readings(self) -> dict[str, TankClosingReading]:
        return self._tanks

    def _new_pump_reading(self, pump_id: str) -> PumpClosingReading:
        pump = self._topology.pump(pump_id)
        if pump is None:
            self._logger.warning("pump_not_in_topology", pump_id=pump_id)

        baseline = self._shift.opening_meter(pump_id) if self._shift else None
        if baseline is None and pump is not None:
            baseline = pump.start_reading

        reading = PumpClosingReading(
            pump_id=pump_id,
            opening_electric=baseline.electric_meter if baseline else ZERO,
            opening_manual=baseline.manual_meter if baseline else ZERO,
            opening_cash=baseline.cash_meter if baseline else ZERO,
            pump_name=pump.pump_name if pump else "",
            island_id=pump.island_id if pump else None,
            product_id=pump.product_id if pump else None,
        )
        reading.recalculate(self._resolver.resolve_unit_price(reading.product_id))
        return reading

    def _new_tank_reading(self, tank_id: str) -> TankClosingReading:
        tank = self._topology.tank(tank_id)
        opening = self._shift.opening_dip(tank_id) if self._shift else None
        sources = [r for r in (tank.latest_reading if tank else None, opening) if r is not None]

        def seeded(name: str, default: Decimal) -> Decimal:
            for source in sources:
                value = getattr(source, name)
                if value is not None:
                    return value
            return default

        return TankClosingReading(
            tank_id=tank_id,
            temperature=seeded("temperature", DEFAULT_TEMPERATURE),
            water_level=seeded("water_level", DEFAULT_WATER_LEVEL),
            density=seeded("density", DEFAULT_DENSITY),
            opening_dip=opening.dip_value if opening else ZERO,
            opening_volume=opening.volume if opening else ZERO,
            tank_name=tank.tank_name if tank else "",
        )

    def update_pump_reading(self, pump_id: str, field: str, raw_value: Any) -> PumpClosingReading:
        """Store one closing meter value for a pump.

        Editing the electric or manual meter re-derives liters dispensed and
        sales value from the opening baseline and the resolved unit price.
        """
        name = _normalize_field(field, PUMP_FIELDS)
        value = parse_amount(raw_value)

        reading = self._pumps.get(pump_id)
        if reading is None:
            reading = self._new_pump_reading(pump_id)
            self._pumps[pump_id] = reading

        setattr(reading, name, value)
        if name in PUMP_METER_FIELDS:
            reading.recalculate(self._resolver.resolve_unit_price(reading.product_id))
        return reading

    def update_tank_reading(self, tank_id: str, field: str, raw_value: Any) -> TankClosingReading:
        """Store one closing dip value for a tank.

        The dip value and volume are kept in step: whichever was edited last
        wins and the other is recomputed. Temperature, water level and
        density never touch other fields.
        """
        name = _normalize_field(field, TANK_FIELDS)
        value = parse_amount(raw_value)

        reading = self._tanks.get(tank_id)
        if reading is None:
            reading = self._new_tank_reading(tank_id)
            self._tanks[tank_id] = reading

        setattr(reading, name, value)
        if name == "volume":
            reading.dip_value = volume_to_dip(value)
        elif name == "dip_value":
            reading.volume = dip_to_volume(value)
        return reading

    def reprice(self, resolver: PriceResolver) -> None:
        """Switch to a new price table and re-derive every pump's sales value."""
        self._resolver = resolver
        for reading in self._pumps.values():
            reading.recalculate(resolver.resolve_unit_price(reading.product_id))
        self._logger.debug("readings_repriced", pumps=len(self._pumps))

    def completed_pump_ids(self) -> set[str]:
        return {pid for pid, r in self._pumps.items() if r.electric_meter > 0}

    def completed_tank_ids(self) -> set[str]:
        return {tid for tid, r in self._tanks.items() if r.dip_value > 0 and r.volume > 0}

    def total_sales(self) -> Decimal:
        return sum((r.sales_value for r in self._pumps.values()), ZERO)

    def total_liters(self) -> Decimal:
        return sum((r.liters_dispensed for r in self._pumps.values()), ZERO)

    def total_volume_change(self) -> Decimal:
        return sum((r.volume_change for r in self._tanks.values() if r.volume > 0), ZERO)

    def snapshot(self) -> dict[str, Any]:
        """Raw captured values, as strings, for the selection store."""
        return {
            "pumps": {
                pid: {name: str(getattr(r, name)) for name in PUMP_FIELDS}
                for pid, r in self._pumps.items()
            },
            "tanks": {
                tid: {name: str(getattr(r, name)) for name in TANK_FIELDS}
                for tid, r in self._tanks.items()
            },
        }

    def restore(self, snapshot: dict[str, Any]) -> None:
        """Replay a snapshot through the update functions."""
        for pump_id, values in (snapshot.get("pumps") or {}).items():
            for name in PUMP_FIELDS:
                if name in values:
                    self.update_pump_reading(pump_id, name, values[name])
        for tank_id, values in (snapshot.get("tanks") or {}).items():
            for name in ("temperature", "water_level", "density", "volume"):
                if name in values:
                    self.update_tank_reading(tank_id, name, values[name])
