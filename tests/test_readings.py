"""Tests for closing reading capture."""

from decimal import Decimal

import pytest

from shift_closing.assets import StationTopology
from shift_closing.models import Product
from shift_closing.money import parse_amount
from shift_closing.pricing import PriceResolver
from shift_closing.readings import ReadingCapture


@pytest.fixture
def capture(topology, shift, resolver) -> ReadingCapture:
    return ReadingCapture(topology, shift, resolver)


class TestParseAmount:
    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "1.2.3", "NaN", "inf", True])
    def test_malformed_input_is_zero(self, raw):
        assert parse_amount(raw) == Decimal("0")

    def test_numbers_and_strings(self):
        assert parse_amount("1,050.5") == Decimal("1050.5")
        assert parse_amount(42) == Decimal("42")
        assert parse_amount(" 7.25 ") == Decimal("7.25")

    def test_negative_values_are_kept(self):
        assert parse_amount("-5") == Decimal("-5")


class TestPumpReadings:
    def test_liters_and_sales_from_opening_baseline(self, capture):
        reading = capture.update_pump_reading("pump-1", "electric_meter", "1050")

        assert reading.opening_electric == Decimal("1000")
        assert reading.liters_dispensed == Decimal("50")
        assert reading.unit_price == Decimal("150.00")
        assert reading.sales_value == Decimal("7500.00")

    def test_liters_never_negative(self, capture):
        reading = capture.update_pump_reading("pump-1", "electric_meter", "900")

        assert reading.liters_dispensed == Decimal("0")
        assert reading.sales_value == Decimal("0")

    def test_sales_value_uses_resolved_price_only(self, capture, resolver, topology):
        for pump_id, value in [("pump-1", "1012.5"), ("pump-2", "2003"), ("pump-3", "310")]:
            reading = capture.update_pump_reading(pump_id, "electric_meter", value)
            price = resolver.price_for_pump(topology, pump_id).unit_price
            assert reading.liters_dispensed >= 0
            assert reading.sales_value == reading.liters_dispensed * price

    def test_start_reading_used_when_shift_has_no_opening(self, capture):
        reading = capture.update_pump_reading("pump-3", "electric_meter", "350")

        assert reading.opening_electric == Decimal("300")
        assert reading.liters_dispensed == Decimal("50")
        assert reading.unit_price == Decimal("100.00")
        assert reading.price_status == "unknown"

    def test_unknown_pump_has_zero_baseline(self, topology, resolver):
        capture = ReadingCapture(topology, None, resolver)

        reading = capture.update_pump_reading("pump-9", "electric_meter", "10")

        assert reading.opening_electric == Decimal("0")
        assert reading.liters_dispensed == Decimal("10")

    def test_malformed_input_becomes_zero(self, capture):
        reading = capture.update_pump_reading("pump-1", "electricMeter", "12a")

        assert reading.electric_meter == Decimal("0")
        assert reading.liters_dispensed == Decimal("0")

    def test_update_only_touches_one_pump(self, capture):
        capture.update_pump_reading("pump-1", "electric_meter", "1050")
        capture.update_pump_reading("pump-2", "manual_meter", "2010")

        assert capture.pump_readings["pump-1"].manual_meter == Decimal("0")
        assert capture.pump_readings["pump-2"].electric_meter == Decimal("0")
        assert capture.pump_readings["pump-1"].electric_meter == Decimal("1050")

    def test_cash_meter_does_not_change_sales(self, capture):
        capture.update_pump_reading("pump-1", "electric_meter", "1050")
        reading = capture.update_pump_reading("pump-1", "cash_meter", "600")

        assert reading.cash_meter == Decimal("600")
        assert reading.sales_value == Decimal("7500.00")

    def test_unknown_field_raises(self, capture):
        with pytest.raises(ValueError, match="Unknown reading field"):
            capture.update_pump_reading("pump-1", "unit_price", "999")

    def test_reprice_keeps_sales_consistent(self, capture):
        capture.update_pump_reading("pump-1", "electric_meter", "1050")
        cheaper = PriceResolver.from_products(
            [Product(id="prod-pms", name="Super Petrol", fuel_code="PMS", min_selling_price=Decimal("120"))]
        )

        capture.reprice(cheaper)

        reading = capture.pump_readings["pump-1"]
        assert reading.unit_price == Decimal("120")
        assert reading.sales_value == Decimal("6000")


class TestTankReadings:
    def test_dip_then_volume_sync(self, capture):
        reading = capture.update_tank_reading("tank-1", "dip_value", "10")
        assert reading.volume == Decimal("100000")

        reading = capture.update_tank_reading("tank-1", "volume", "50000")
        assert reading.dip_value == Decimal("5")
        assert reading.volume == reading.dip_value * 10000

    def test_other_fields_do_not_cross_update(self, capture):
        capture.update_tank_reading("tank-1", "dip_value", "1.5")

        reading = capture.update_tank_reading("tank-1", "temperature", "27.5")

        assert reading.temperature == Decimal("27.5")
        assert reading.dip_value == Decimal("1.5")
        assert reading.volume == Decimal("15000")

    def test_defaults_seeded_from_latest_reading(self, capture):
        reading = capture.update_tank_reading("tank-1", "dip_value", "1")

        assert reading.temperature == Decimal("24.0")
        assert reading.density == Decimal("0.84")
        # the tank's last dip has no water level, so the opening dip supplies it
        assert reading.water_level == Decimal("0.1")
        assert reading.opening_volume == Decimal("12000")

    def test_zero_temperature_from_latest_reading_is_kept(self, assets_structure, shift, resolver):
        assets_structure["tanks"][0]["dipReadings"][0]["temperature"] = 0
        capture = ReadingCapture(StationTopology.from_api(assets_structure), shift, resolver)

        reading = capture.update_tank_reading("tank-1", "dip_value", "1")

        assert reading.temperature == Decimal("0")
        assert reading.density == Decimal("0.84")

    def test_defaults_without_any_reading(self, topology, resolver):
        capture = ReadingCapture(topology, None, resolver)

        reading = capture.update_tank_reading("tank-9", "volume", "100")

        assert reading.temperature == Decimal("25.0")
        assert reading.density == Decimal("0.85")
        assert reading.dip_value == Decimal("0.01")

    def test_unknown_field_raises(self, capture):
        with pytest.raises(ValueError):
            capture.update_tank_reading("tank-1", "pressure", "1")


class TestSnapshot:
    def test_restore_replays_values(self, capture, topology, shift, resolver):
        capture.update_pump_reading("pump-1", "electric_meter", "1050")
        capture.update_pump_reading("pump-1", "manual_meter", "1040")
        capture.update_tank_reading("tank-1", "dip_value", "1.1")
        capture.update_tank_reading("tank-1", "temperature", "26")

        restored = ReadingCapture(topology, shift, resolver)
        restored.restore(capture.snapshot())

        pump = restored.pump_readings["pump-1"]
        tank = restored.tank_readings["tank-1"]
        assert pump.sales_value == Decimal("7500.00")
        assert pump.manual_meter == Decimal("1040")
        assert tank.volume == Decimal("11000.0")
        assert tank.temperature == Decimal("26")

    def test_totals(self, capture):
        capture.update_pump_reading("pump-1", "electric_meter", "1050")
        capture.update_pump_reading("pump-2", "electric_meter", "2010")

        assert capture.total_liters() == Decimal("60")
        assert capture.total_sales() == Decimal("9000.00")
        assert capture.completed_pump_ids() == {"pump-1", "pump-2"}
