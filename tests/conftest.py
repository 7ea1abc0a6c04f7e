"""Pytest configuration and fixtures."""

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("STATION_API_URL", "http://localhost:8000/api/v1")
os.environ.setdefault("STATION_ID", "station-1")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from shift_closing.assets import StationTopology  # noqa: E402
from shift_closing.models import Debtor, Product, Shift  # noqa: E402
from shift_closing.pricing import PriceResolver  # noqa: E402


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def shift_data() -> dict[str, Any]:
    """An open shift as returned by the open-shift endpoint."""
    return {
        "id": "shift-1",
        "stationId": "station-1",
        "shiftNumber": "SH-0042",
        "supervisorId": "user-1",
        "status": "OPEN",
        "startTime": "2026-10-19T06:00:00Z",
        "priceListId": "pl-1",
        "priceList": {"id": "pl-1", "name": "October retail"},
        "shiftOpeningCheck": [{"cashFloat": "5000.00", "verifiedBy": "user-9"}],
        "meterReadings": [
            {"pumpId": "pump-1", "electricMeter": 1000, "manualMeter": 990, "cashMeter": 500},
            {"pumpId": "pump-2", "electricMeter": 2000, "manualMeter": 2000, "cashMeter": 0},
        ],
        "dipReadings": [
            {
                "tankId": "tank-1",
                "dipValue": 1.2,
                "volume": 12000,
                "temperature": 24.0,
                "waterLevel": 0.1,
                "density": 0.84,
            }
        ],
    }


@pytest.fixture
def assets_structure() -> dict[str, Any]:
    """Shift asset structure: two islands, three pumps, one tank."""
    return {
        "islands": [
            {
                "islandId": "island-1",
                "islandName": "Island A",
                "islandCode": "IA",
                "pumps": [
                    {
                        "pumpId": "pump-1",
                        "pumpName": "Pump 1",
                        "product": {"id": "prod-ago", "name": "Diesel"},
                    },
                    {"pumpId": "pump-2", "pumpName": "Pump 2"},
                ],
                "attendants": [{"id": "att-1"}],
            },
            {
                "islandId": "island-2",
                "islandName": "Island B",
                "pumps": [
                    {
                        "pumpId": "pump-3",
                        "pumpName": "Pump 3",
                        "meterReadings": [
                            {"readingType": "START", "electricMeter": 300, "manualMeter": 300},
                        ],
                    }
                ],
            },
        ],
        "tanks": [
            {
                "tankId": "tank-1",
                "tankName": "Tank PMS",
                "capacity": 30000,
                "currentVolume": 12000,
                "product": {"id": "prod-pms", "name": "Super Petrol"},
                "connectedPumps": [{"pumpId": "pump-1"}, {"pumpId": "pump-2"}],
                "dipReadings": [
                    {"dipValue": 1.2, "volume": 12000, "temperature": 24.0, "density": 0.84}
                ],
            }
        ],
        "attendants": [{"id": "att-1", "name": "Wanjiru"}],
    }


@pytest.fixture
def products_data() -> list[dict[str, Any]]:
    return [
        {
            "id": "prod-pms",
            "name": "Super Petrol",
            "fuelCode": "PMS",
            "baseCostPrice": "140.00",
            "minSellingPrice": "150.00",
            "maxSellingPrice": "160.00",
            "priceStatus": "active",
        },
        {
            "id": "prod-ago",
            "name": "Diesel",
            "fuelCode": "AGO",
            "baseCostPrice": "130.00",
            "minSellingPrice": "140.00",
            "maxSellingPrice": "150.00",
        },
    ]


@pytest.fixture
def debtors_data() -> list[dict[str, Any]]:
    return [
        {"id": "debtor-1", "name": "Acme Transport", "phone": "0700111222"},
        {"id": "debtor-2", "name": "Baraka Logistics", "email": "ops@baraka.example"},
    ]


@pytest.fixture
def shift(shift_data) -> Shift:
    return Shift.from_api(shift_data)


@pytest.fixture
def topology(assets_structure) -> StationTopology:
    return StationTopology.from_api(assets_structure)


@pytest.fixture
def products(products_data) -> list[Product]:
    return [Product.from_api(p) for p in products_data]


@pytest.fixture
def resolver(products) -> PriceResolver:
    return PriceResolver.from_products(products)


@pytest.fixture
def debtors(debtors_data) -> list[Debtor]:
    return [Debtor.from_api(d) for d in debtors_data]
