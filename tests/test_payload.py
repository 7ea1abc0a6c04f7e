"""Tests for building and validating the closing payload."""

from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from shift_closing.expected import calculate_expected_collections
from shift_closing.models import Recorder
from shift_closing.payload import (
    ClosingState,
    build_closing_payload,
    summarize_payload,
    validate_closing_payload,
)
from shift_closing.readings import ReadingCapture
from shift_closing.reconciliation import CollectionsLedger

END_TIME = datetime(2026, 10, 19, 18, 0, tzinfo=UTC)
GENERATED_AT = datetime(2026, 10, 19, 18, 5, tzinfo=UTC)


@pytest.fixture
def state(topology, shift, resolver) -> ClosingState:
    capture = ReadingCapture(topology, shift, resolver)
    capture.update_pump_reading("pump-1", "electric_meter", "1050")
    capture.update_pump_reading("pump-1", "manual_meter", "1040")
    # pump-2 touched but no electric meter: filtered out
    capture.update_pump_reading("pump-2", "cash_meter", "15")
    capture.update_tank_reading("tank-1", "dip_value", "1.1")

    ledger = CollectionsLedger()
    ledger.record_actual_collection("island-1", "cash", "7503")
    ledger.record_actual_collection("island-2", "cash", "0")

    return ClosingState(
        shift_id=shift.id,
        end_time=END_TIME,
        pump_readings=capture.pump_readings,
        tank_readings=capture.tank_readings,
        collections=ledger.collections,
        expected=calculate_expected_collections(topology, capture.pump_readings, resolver),
    )


def test_zero_entries_are_filtered(state):
    payload = build_closing_payload(state, Recorder(id="user-1"), generated_at=GENERATED_AT)

    assert [r.pump_id for r in payload.pump_readings] == ["pump-1"]
    assert [r.tank_id for r in payload.tank_readings] == ["tank-1"]
    assert [c.island_id for c in payload.island_collections] == ["island-1"]
    assert payload.metadata.total_pumps == 1
    assert payload.metadata.total_tanks == 1
    assert payload.metadata.total_islands == 1


def test_wire_shape(state):
    payload = build_closing_payload(
        state, Recorder(id="user-1"), station_id="station-1", generated_at=GENERATED_AT
    )

    data = payload.to_dict()

    assert data["shiftId"] == "shift-1"
    assert data["recordedById"] == "user-1"
    assert data["endTime"] == "2026-10-19T18:00:00+00:00"
    assert data["pumpReadings"][0] == {
        "pumpId": "pump-1",
        "electricMeter": Decimal("1050"),
        "manualMeter": Decimal("1040"),
        "cashMeter": Decimal("0"),
        "litersDispensed": Decimal("50"),
        "salesValue": Decimal("7500.00"),
        "unitPrice": Decimal("150.00"),
    }
    assert data["tankReadings"][0]["volume"] == Decimal("11000.0")
    assert data["islandCollections"][0]["cashAmount"] == Decimal("7503")
    assert data["islandCollections"][0]["expectedAmount"] == Decimal("7500.00")
    assert data["metadata"] == {
        "stationId": "station-1",
        "totalPumps": 1,
        "totalTanks": 1,
        "totalIslands": 1,
        "generatedAt": "2026-10-19T18:05:00+00:00",
        "pricingUsed": "dynamic",
    }


def test_payload_is_detached_from_state(state):
    payload = build_closing_payload(state, Recorder(id="user-1"), generated_at=GENERATED_AT)

    state.pump_readings["pump-1"].electric_meter = Decimal("9999")

    assert payload.pump_readings[0].electric_meter == Decimal("1050")


def test_valid_payload(state):
    payload = build_closing_payload(state, Recorder(id="user-1"), generated_at=GENERATED_AT)

    result = validate_closing_payload(payload)

    assert result.is_valid
    assert result.errors == []


def test_missing_header_fields(state):
    payload = build_closing_payload(
        replace(state, shift_id=None, end_time=None), None, generated_at=GENERATED_AT
    )

    result = validate_closing_payload(payload)

    assert not result.is_valid
    assert result.errors[:3] == [
        "Shift ID is required",
        "Recorded By user ID is required",
        "End time is required",
    ]


def test_negative_meter_and_dip_are_reported(topology, shift, resolver):
    capture = ReadingCapture(topology, shift, resolver)
    capture.update_pump_reading("pump-1", "electric_meter", "-1")
    capture.update_tank_reading("tank-1", "dip_value", "-0.5")
    state = ClosingState(
        shift_id="shift-1",
        end_time=END_TIME,
        pump_readings=capture.pump_readings,
        tank_readings=capture.tank_readings,
    )

    result = validate_closing_payload(build_closing_payload(state, Recorder(id="user-1")))

    assert result.errors == [
        "Pump pump-1: Electric meter cannot be negative",
        "Tank tank-1: Dip value cannot be negative",
    ]


def test_non_positive_unit_price_is_reported(state):
    payload = build_closing_payload(state, Recorder(id="user-1"), generated_at=GENERATED_AT)
    bad = replace(payload, pump_readings=(replace(payload.pump_readings[0], unit_price=Decimal("0")),))

    result = validate_closing_payload(bad)

    assert result.errors == ["Pump pump-1: Unit price must be greater than 0"]


def test_summary(state):
    payload = build_closing_payload(state, Recorder(id="user-1"), generated_at=GENERATED_AT)

    summary = summarize_payload(payload)

    assert summary.pumps == 1
    assert summary.total_sales == Decimal("7500.00")
    assert summary.total_collections == Decimal("7503")
    assert summary.total_liters == Decimal("50")
