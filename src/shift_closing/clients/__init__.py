"""Clients for the services the closing workflow talks to."""

from shift_closing.clients.station_api import (
    RateLimitError,
    ShiftClosingGateway,
    StationAPIClient,
    StationAPIError,
)

__all__ = [
    "RateLimitError",
    "ShiftClosingGateway",
    "StationAPIClient",
    "StationAPIError",
]
