"""Unit price lookup - the single source of truth for fuel prices.

Sales values and expected collections are always priced here. A price typed
by the operator may be displayed but never enters a calculation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

import structlog

from shift_closing.assets import StationTopology
from shift_closing.models import Product

logger = structlog.get_logger(__name__)

FALLBACK_UNIT_PRICE = Decimal("100.00")
PRICE_STATUS_UNKNOWN = "unknown"
UNKNOWN_FUEL_CODE = "UNKNOWN"


@dataclass(frozen=True)
class PriceInfo:
    """Resolved price for a product."""

    unit_price: Decimal
    price_status: str
    fuel_code: str
    name: str
    base_cost_price: Decimal | None = None
    min_selling_price: Decimal | None = None
    max_selling_price: Decimal | None = None

    @property
    def is_fallback(self) -> bool:
        """True when the sentinel price was used because the product is unknown."""
        return self.price_status == PRICE_STATUS_UNKNOWN

    @property
    def margin(self) -> Decimal:
        if not self.base_cost_price or self.is_fallback:
            return Decimal("0")
        return (self.unit_price - self.base_cost_price) / self.base_cost_price * 100


FALLBACK_PRICE = PriceInfo(
    unit_price=FALLBACK_UNIT_PRICE,
    price_status=PRICE_STATUS_UNKNOWN,
    fuel_code=UNKNOWN_FUEL_CODE,
    name="Unknown Product",
)


@dataclass(frozen=True)
class PricingWarning:
    """A pump whose sales are priced with the fallback sentinel."""

    pump_id: str
    pump_name: str
    product_id: str | None

    @property
    def message(self) -> str:
        product = self.product_id or "no product"
        return (
            f"Pump {self.pump_name or self.pump_id} ({product}) has no price; "
            f"using fallback {FALLBACK_UNIT_PRICE}"
        )


class PriceResolver:
    """Resolves unit prices by product id.

    The unit price of a product is its minimum selling price. Unknown or
    missing products resolve to ``FALLBACK_PRICE`` instead of failing.
    """

    def __init__(self, prices: dict[str, PriceInfo] | None = None):
        self._prices = dict(prices or {})
        self._logger = logger.bind(component="price_resolver")
        self._warned: set[str | None] = set()

    @classmethod
    def from_products(cls, products: Iterable[Product]) -> PriceResolver:
        prices = {
            product.id: PriceInfo(
                unit_price=product.min_selling_price,
                price_status=product.price_status,
                fuel_code=product.fuel_code,
                name=product.name,
                base_cost_price=product.base_cost_price,
                min_selling_price=product.min_selling_price,
                max_selling_price=product.max_selling_price,
            )
            for product in products
        }
        return cls(prices)

    def __len__(self) -> int:
        return len(self._prices)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._prices

    def resolve_unit_price(self, product_id: str | None) -> PriceInfo:
        """Get the price for a product, falling back to the sentinel."""
        if product_id and product_id in self._prices:
            return self._prices[product_id]
        if product_id not in self._warned:
            self._warned.add(product_id)
            self._logger.warning("price_fallback_used", product_id=product_id)
        return FALLBACK_PRICE

    def price_of(self, product_id: str | None) -> Decimal:
        return self.resolve_unit_price(product_id).unit_price

    def price_for_pump(self, topology: StationTopology, pump_id: str) -> PriceInfo:
        """Get the price of whatever product a pump dispenses."""
        pump = topology.pump(pump_id)
        return self.resolve_unit_price(pump.product_id if pump else None)

    def warnings_for(self, topology: StationTopology) -> list[PricingWarning]:
        """List pumps that would be priced with the fallback sentinel."""
        return [
            PricingWarning(
                pump_id=pump.pump_id, pump_name=pump.pump_name, product_id=pump.product_id
            )
            for pump in topology.all_pumps()
            if not (pump.product_id and pump.product_id in self._prices)
        ]
