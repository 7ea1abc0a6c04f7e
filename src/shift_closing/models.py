"""Reference records the closing workflow reads from the station API.

The API speaks camelCase JSON; each record has a ``from_api`` constructor
that tolerates missing keys and ``{"data": ...}`` envelopes are unwrapped by
the client before these are built.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from shift_closing.money import ZERO, parse_amount


class ShiftStatus(str, Enum):
    """Lifecycle of a shift. Only the closing payload moves OPEN to CLOSED."""

    PENDING = "PENDING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp from the API, assuming UTC when naive."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True)
class OpeningMeterReading:
    """Pump meter values recorded when the shift was opened."""

    pump_id: str
    electric_meter: Decimal = ZERO
    manual_meter: Decimal = ZERO
    cash_meter: Decimal = ZERO

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> OpeningMeterReading:
        return cls(
            pump_id=str(data.get("pumpId") or data.get("pump_id") or ""),
            electric_meter=parse_amount(data.get("electricMeter")),
            manual_meter=parse_amount(data.get("manualMeter")),
            cash_meter=parse_amount(data.get("cashMeter")),
        )


@dataclass(frozen=True)
class OpeningDipReading:
    """Tank dip values recorded when the shift was opened."""

    tank_id: str
    dip_value: Decimal = ZERO
    volume: Decimal = ZERO
    temperature: Decimal | None = None
    water_level: Decimal | None = None
    density: Decimal | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> OpeningDipReading:
        def optional(key: str) -> Decimal | None:
            return parse_amount(data[key]) if data.get(key) is not None else None

        return cls(
            tank_id=str(data.get("tankId") or data.get("tank_id") or ""),
            dip_value=parse_amount(data.get("dipValue")),
            volume=parse_amount(data.get("volume")),
            temperature=optional("temperature"),
            water_level=optional("waterLevel"),
            density=optional("density"),
        )


@dataclass(frozen=True)
class Shift:
    """A station shift as returned by the opening workflow."""

    id: str
    station_id: str | None
    status: ShiftStatus
    shift_number: str | None = None
    supervisor_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    price_list_id: str | None = None
    price_list_name: str | None = None
    cash_float: Decimal | None = None
    verified_by: str | None = None
    meter_readings: tuple[OpeningMeterReading, ...] = ()
    dip_readings: tuple[OpeningDipReading, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Shift:
        raw_status = str(data.get("status") or ShiftStatus.OPEN.value).upper()
        try:
            status = ShiftStatus(raw_status)
        except ValueError:
            status = ShiftStatus.PENDING

        price_list = data.get("priceList") or {}
        opening_checks = data.get("shiftOpeningCheck") or []
        opening_check = opening_checks[0] if opening_checks else {}
        cash_float = opening_check.get("cashFloat")

        return cls(
            id=str(data["id"]),
            station_id=_str_or_none(data.get("stationId")),
            status=status,
            shift_number=_str_or_none(data.get("shiftNumber")),
            supervisor_id=_str_or_none(data.get("supervisorId")),
            start_time=parse_datetime(data.get("startTime")),
            end_time=parse_datetime(data.get("endTime")),
            price_list_id=_str_or_none(data.get("priceListId")),
            price_list_name=_str_or_none(price_list.get("name")),
            cash_float=parse_amount(cash_float) if cash_float is not None else None,
            verified_by=_str_or_none(opening_check.get("verifiedBy")),
            meter_readings=tuple(
                OpeningMeterReading.from_api(r) for r in data.get("meterReadings") or []
            ),
            dip_readings=tuple(
                OpeningDipReading.from_api(r) for r in data.get("dipReadings") or []
            ),
        )

    @property
    def is_open(self) -> bool:
        return self.status == ShiftStatus.OPEN

    def opening_meter(self, pump_id: str) -> OpeningMeterReading | None:
        """Get the opening meter reading recorded for a pump."""
        return next((r for r in self.meter_readings if r.pump_id == pump_id), None)

    def opening_dip(self, tank_id: str) -> OpeningDipReading | None:
        """Get the opening dip reading recorded for a tank."""
        return next((r for r in self.dip_readings if r.tank_id == tank_id), None)


@dataclass(frozen=True)
class Product:
    """A fuel product with its selling price band."""

    id: str
    name: str
    fuel_code: str
    base_cost_price: Decimal = ZERO
    min_selling_price: Decimal = ZERO
    max_selling_price: Decimal = ZERO
    price_status: str = "active"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Product:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            fuel_code=str(data.get("fuelCode") or data.get("code") or ""),
            base_cost_price=parse_amount(data.get("baseCostPrice")),
            min_selling_price=parse_amount(data.get("minSellingPrice")),
            max_selling_price=parse_amount(data.get("maxSellingPrice")),
            price_status=str(data.get("priceStatus") or "active"),
        )


@dataclass(frozen=True)
class Debtor:
    """A customer account that can carry fuel debt."""

    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    contact_person: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Debtor:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            phone=_str_or_none(data.get("phone")),
            email=_str_or_none(data.get("email")),
            contact_person=_str_or_none(data.get("contactPerson")),
        )


@dataclass(frozen=True)
class Recorder:
    """The supervisor recording the closing."""

    id: str
    name: str = ""
