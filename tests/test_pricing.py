"""Tests for unit price resolution."""

from decimal import Decimal

from shift_closing.models import Product
from shift_closing.pricing import (
    FALLBACK_PRICE,
    FALLBACK_UNIT_PRICE,
    PriceResolver,
)


def test_unit_price_is_min_selling_price(resolver):
    price = resolver.resolve_unit_price("prod-pms")

    assert price.unit_price == Decimal("150.00")
    assert price.fuel_code == "PMS"
    assert price.price_status == "active"
    assert not price.is_fallback


def test_unknown_product_uses_fallback(resolver):
    price = resolver.resolve_unit_price("prod-missing")

    assert price is FALLBACK_PRICE
    assert price.unit_price == FALLBACK_UNIT_PRICE == Decimal("100.00")
    assert price.price_status == "unknown"
    assert price.fuel_code == "UNKNOWN"
    assert price.is_fallback


def test_missing_product_id_uses_fallback(resolver):
    assert resolver.price_of(None) == Decimal("100.00")
    assert resolver.price_of("") == Decimal("100.00")


def test_margin():
    resolver = PriceResolver.from_products(
        [Product(id="p", name="P", fuel_code="P", base_cost_price=Decimal("100"), min_selling_price=Decimal("125"))]
    )

    assert resolver.resolve_unit_price("p").margin == Decimal("25")
    assert FALLBACK_PRICE.margin == Decimal("0")


def test_price_for_pump_uses_tank_product(resolver, topology):
    assert resolver.price_for_pump(topology, "pump-1").unit_price == Decimal("150.00")
    assert resolver.price_for_pump(topology, "pump-3").is_fallback


def test_warnings_list_pumps_on_fallback(resolver, topology):
    warnings = resolver.warnings_for(topology)

    assert [w.pump_id for w in warnings] == ["pump-3"]
    assert "Pump 3" in warnings[0].message
    assert "100.00" in warnings[0].message


def test_container_protocol(resolver):
    assert len(resolver) == 2
    assert "prod-ago" in resolver
    assert "prod-missing" not in resolver
