#!/usr/bin/env python3
"""Preview the closing of a station's open shift.

Loads the open shift, its asset structure and fuel prices, replays any
closing readings saved in the selection store, and prints the expected
collections per island. Nothing is submitted.

Usage:
    python scripts/preview_closing.py --station-id=<id>
    python scripts/preview_closing.py --station-id=<id> --store-dir=.selections
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_closing.clients import StationAPIClient
from shift_closing.config import configure_logging, get_settings
from shift_closing.models import Recorder
from shift_closing.money import format_money
from shift_closing.store import JsonFileSelectionStore
from shift_closing.wizard import ShiftClosingWizard


async def preview(station_id: str, store_dir: Path | None, currency: str) -> int:
    store = JsonFileSelectionStore(store_dir) if store_dir else None

    async with StationAPIClient() as client:
        wizard = ShiftClosingWizard(
            client, Recorder(id="preview"), station_id=station_id, store=store
        )
        await wizard.start()

    for source, error in wizard.reference_errors.items():
        print(f"  ✗ {source}: {error}")

    report = wizard.pre_closing_report
    if wizard.shift is None:
        print(f"No open shift for station {station_id}")
        return 1

    print("=" * 60)
    print(f"Shift {wizard.shift.shift_number or wizard.shift.id} ({wizard.shift.status.value})")
    print("=" * 60)
    for issue in report.issues:
        print(f"  ✗ {issue}")
    for warning in report.warnings:
        print(f"  ⚠ {warning}")
    for warning in wizard.pricing_warnings:
        print(f"  ⚠ {warning.message}")

    for island in wizard.expected_collections_by_island:
        print(f"\n{island.island_name or island.island_id}")
        print("-" * 60)
        for pump in island.pumps:
            print(
                f"  {pump.pump_name or pump.pump_id:<20} "
                f"{pump.average_sales:>10} L x {pump.unit_price:>8} = "
                f"{format_money(pump.expected_collection, currency)}"
            )
        print(f"  {'Expected':<20} {format_money(island.total_expected, currency)}")

    variance = wizard.grand_variance
    print("\n" + "=" * 60)
    print(f"Expected:  {format_money(variance.expected, currency)}")
    print(f"Collected: {format_money(variance.collected, currency)}")
    print(f"Variance:  {format_money(variance.variance, currency)} ({variance.status.value})")
    return 0


def main() -> None:
    configure_logging()
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Preview a fuel station shift closing")
    parser.add_argument(
        "--station-id",
        type=str,
        default=settings.station_id,
        help="Station to preview (default: STATION_ID)",
    )
    parser.add_argument(
        "--store-dir",
        type=Path,
        default=settings.selection_store_dir,
        help="Directory of saved closing selections (default: SELECTION_STORE_DIR)",
    )
    args = parser.parse_args()

    if not args.station_id:
        parser.error("--station-id is required when STATION_ID is not set")

    sys.exit(asyncio.run(preview(args.station_id, args.store_dir, settings.currency)))


if __name__ == "__main__":
    main()
