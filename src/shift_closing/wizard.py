"""Shift closing wizard.

Walks the supervisor through closing a shift:

1. Pre-closing check - the shift is open and has opening readings
2. Pump readings - closing electric, manual and cash meters
3. Tank readings - closing dips
4. Collections - money collected per island and payment method
5. Debt allocation - only when debt was collected, until it is allocated
6. Summary - review and close the shift

The wizard owns all captured state. Every derived figure (expected
collections, variance, the payload itself) is recomputed when read.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from shift_closing.assets import StationTopology
from shift_closing.clients.station_api import ShiftClosingGateway, StationAPIError
from shift_closing.config import (
    bind_closing_context,
    clear_closing_context,
    get_settings,
)
from shift_closing.debt_allocation import (
    AllocationBatchReport,
    AllocationDraft,
    DebtAllocation,
    DebtAllocationEngine,
)
from shift_closing.errors import (
    ClosingSubmissionError,
    ReferenceDataError,
    ShiftClosingError,
    StepGateError,
)
from shift_closing.expected import IslandExpectedCollection, calculate_expected_collections
from shift_closing.models import Debtor, Product, Recorder, Shift
from shift_closing.money import ZERO
from shift_closing.payload import (
    ClosingPayload,
    ClosingState,
    PayloadSummary,
    build_closing_payload,
    summarize_payload,
    validate_closing_payload,
)
from shift_closing.preclosing import PreClosingReport, check_pre_closing
from shift_closing.pricing import PriceResolver, PricingWarning
from shift_closing.readings import PumpClosingReading, ReadingCapture, TankClosingReading
from shift_closing.reconciliation import (
    CollectionsLedger,
    IslandActualCollection,
    IslandVariance,
    PaymentMethod,
    VarianceResult,
)
from shift_closing.store import SelectionStore, default_selection_store, scope_key

logger = structlog.get_logger(__name__)


class WizardStep(str, Enum):
    PRE_CLOSING_CHECK = "pre_closing_check"
    PUMP_READINGS = "pump_readings"
    TANK_READINGS = "tank_readings"
    COLLECTIONS = "collections"
    DEBT_ALLOCATION = "debt_allocation"
    SUMMARY = "summary"


def build_step_sequence(
    total_collected_debt: Decimal, debt_allocation_complete: bool
) -> tuple[WizardStep, ...]:
    """Ordered steps for the current state.

    The debt allocation step is only present while there is collected debt
    that has not been allocated yet.
    """
    steps = [
        WizardStep.PRE_CLOSING_CHECK,
        WizardStep.PUMP_READINGS,
        WizardStep.TANK_READINGS,
        WizardStep.COLLECTIONS,
    ]
    if total_collected_debt > 0 and not debt_allocation_complete:
        steps.append(WizardStep.DEBT_ALLOCATION)
    steps.append(WizardStep.SUMMARY)
    return tuple(steps)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ShiftClosingWizard:
    """Orchestrates one shift closing session for a station."""

    def __init__(
        self,
        gateway: ShiftClosingGateway,
        recorder: Recorder,
        station_id: str | None = None,
        store: SelectionStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._gateway = gateway
        self.recorder = recorder
        self.station_id = station_id or get_settings().station_id
        self._store: SelectionStore = store if store is not None else default_selection_store()
        self._clock = clock or _utcnow

        self.shift: Shift | None = None
        self.topology: StationTopology | None = None
        self.resolver: PriceResolver | None = None
        self.products: list[Product] = []
        self.debtors: list[Debtor] = []
        self._reference_errors: dict[str, ReferenceDataError] = {}

        self._readings: ReadingCapture | None = None
        self._collections = CollectionsLedger()
        self._debt: DebtAllocationEngine | None = None
        self._reset_session_flags()
        self._active = True

        self._logger = logger.bind(component="shift_closing_wizard", station_id=self.station_id)

    # === Lifecycle ===

    @property
    def active(self) -> bool:
        return self._active

    @property
    def submitted(self) -> bool:
        return self._submitted

    def deactivate(self) -> None:
        """Stop accepting async responses; anything arriving later is dropped."""
        self._active = False
        self._logger.debug("wizard_deactivated")

    def cancel(self) -> None:
        """Discard the session, including anything saved for resuming it."""
        if self.shift is not None:
            self._store.clear(scope_key(self.shift.id, ""))
        self._readings = None
        self._collections = CollectionsLedger()
        self._debt = None
        self._reset_session_flags()
        self.deactivate()
        self._logger.info("closing_cancelled")
        clear_closing_context()

    def _reset_session_flags(self) -> None:
        self._debt_complete = False
        self._acknowledged_variance: Decimal | None = None
        self._end_time: datetime | None = None
        self._submitted = False
        self._steps = build_step_sequence(ZERO, False)
        self._index = 0

    def _discard_if_inactive(self, source: str) -> bool:
        if self._active:
            return False
        self._logger.debug("late_response_discarded", source=source)
        return True

    # === Reference data ===

    @property
    def reference_errors(self) -> dict[str, ReferenceDataError]:
        return dict(self._reference_errors)

    def _record_error(self, source: str, error: Exception) -> None:
        self._reference_errors[source] = ReferenceDataError(
            source,
            f"Failed to load {source}: {error}",
            details=getattr(error, "details", None),
        )
        self._logger.warning("reference_data_failed", source=source, error=str(error))

    async def start(self) -> None:
        """Load the open shift, its assets, prices and the debtor list."""
        await self.reload_reference_data(force_refresh=False)
        if self.shift is not None:
            await self.reload_debtors()

    async def reload_reference_data(self, force_refresh: bool = True) -> None:
        """Fetch the open shift, then its topology and prices together.

        Failures are recorded per source in ``reference_errors`` and only
        block the steps that need that source.
        """
        for source in ("shift", "topology", "prices"):
            self._reference_errors.pop(source, None)

        if not self.station_id:
            self._record_error("shift", ShiftClosingError("No station configured"))
            return

        try:
            raw_shift = await self._gateway.get_current_open_shift(self.station_id)
        except StationAPIError as e:
            if self._discard_if_inactive("shift"):
                return
            self._record_error("shift", e)
            return
        if self._discard_if_inactive("shift"):
            return

        previous_shift_id = self.shift.id if self.shift else None
        self.shift = Shift.from_api(raw_shift) if raw_shift else None
        if self.shift is None:
            self._logger.info("no_open_shift")
            return
        bind_closing_context(self.station_id, self.shift.id)

        structure, products = await asyncio.gather(
            self._gateway.get_shift_assets_structure(self.shift.id),
            self._gateway.get_product_prices(None, force_refresh),
            return_exceptions=True,
        )
        if self._discard_if_inactive("topology"):
            return

        if isinstance(structure, StationAPIError):
            self._record_error("topology", structure)
        elif isinstance(structure, BaseException):
            raise structure
        else:
            self.topology = StationTopology.from_api(structure)

        if isinstance(products, StationAPIError):
            self._record_error("prices", products)
        elif isinstance(products, BaseException):
            raise products
        else:
            self.products = [Product.from_api(p) for p in products if p.get("id")]
            self.resolver = PriceResolver.from_products(self.products)

        if self.topology is not None and self.resolver is not None:
            self._prepare_session(new_session=previous_shift_id != self.shift.id)

        self._logger.info(
            "reference_data_loaded",
            shift_id=self.shift.id,
            errors=sorted(self._reference_errors),
            products=len(self.products),
        )

    def _prepare_session(self, new_session: bool) -> None:
        """Create or refresh capture state once shift, topology and prices are known.

        A different shift starts a clean session. For the same shift, readings
        are repriced in place when only prices changed, and replayed onto the
        new topology otherwise.
        """
        if self.shift is None or self.topology is None or self.resolver is None:
            raise ShiftClosingError("Shift, topology and prices must be loaded first")

        current = self._readings if not new_session else None
        if (
            current is not None
            and current.topology == self.topology
            and current.shift == self.shift
        ):
            current.reprice(self.resolver)
        else:
            self._readings = ReadingCapture(self.topology, self.shift, self.resolver)
            if current is not None:
                self._readings.restore(current.snapshot())

        if new_session:
            self._reset_session_flags()
            self._collections = CollectionsLedger()
            saved_readings = self._store.load(scope_key(self.shift.id, "readings"))
            if saved_readings:
                self._readings.restore(saved_readings)
            saved_collections = self._store.load(scope_key(self.shift.id, "collections"))
            if saved_collections:
                self._collections.restore(saved_collections)
            if saved_readings or saved_collections:
                self._logger.info("selections_restored", shift_id=self.shift.id)

        if self._debt is None or new_session:
            self._debt = DebtAllocationEngine(
                self._collections,
                shift_id=self.shift.id,
                station_id=self.station_id,
                recorded_by_id=self.recorder.id,
            )
        self._rebuild_steps()

    async def reload_debtors(self) -> None:
        self._reference_errors.pop("debtors", None)
        try:
            raw_debtors = await self._gateway.get_debtors()
        except StationAPIError as e:
            if self._discard_if_inactive("debtors"):
                return
            self._record_error("debtors", e)
            return
        if self._discard_if_inactive("debtors"):
            return
        self.debtors = [Debtor.from_api(d) for d in raw_debtors if d.get("id")]
        self._logger.debug("debtors_loaded", count=len(self.debtors))

    @property
    def _assets_ready(self) -> bool:
        return (
            self.shift is not None
            and self.topology is not None
            and self.resolver is not None
            and not any(s in self._reference_errors for s in ("shift", "topology", "prices"))
        )

    @property
    def _debtors_ready(self) -> bool:
        return "debtors" not in self._reference_errors

    # === Steps ===

    @property
    def steps(self) -> tuple[WizardStep, ...]:
        return self._steps

    @property
    def current_step(self) -> WizardStep:
        return self._steps[self._index]

    @property
    def is_last_step(self) -> bool:
        return self._index == len(self._steps) - 1

    def _rebuild_steps(self) -> None:
        current = self.current_step
        self._steps = build_step_sequence(self.total_collected_debt, self._debt_complete)
        if current in self._steps:
            self._index = self._steps.index(current)
        else:
            self._index = min(self._index, len(self._steps) - 1)

    def gate_reasons(self) -> list[str]:
        """Why the current step cannot be left, empty when it can.

        Covers both the current step's own checks and the reference data the
        next step needs before it can be entered.
        """
        step = self.current_step
        if step == WizardStep.SUMMARY:
            return ["Summary is the last step"]

        reasons: list[str] = []
        if step == WizardStep.PRE_CLOSING_CHECK:
            reasons.extend(self.pre_closing_report.issues)
            if "shift" in self._reference_errors:
                reasons.append(str(self._reference_errors["shift"]))
        elif step == WizardStep.COLLECTIONS:
            if not (self.grand_variance.is_exact or self.variance_acknowledged):
                reasons.append("Collections variance must be exact or acknowledged")
        elif step == WizardStep.DEBT_ALLOCATION:
            if not self._debt_complete:
                reasons.append("Debt allocations have not been saved")

        next_step = self._steps[self._index + 1]
        if next_step in (WizardStep.PUMP_READINGS, WizardStep.TANK_READINGS):
            if not self._assets_ready:
                missing = [s for s in ("topology", "prices") if s in self._reference_errors]
                reasons.append(
                    "Reference data not loaded" + (f": {', '.join(missing)}" if missing else "")
                )
        elif next_step == WizardStep.DEBT_ALLOCATION and not self._debtors_ready:
            reasons.append("Debtors could not be loaded")
        return reasons

    @property
    def can_advance(self) -> bool:
        return not self.gate_reasons()

    def advance(self) -> WizardStep:
        """Move to the next step. Does nothing on the last step.

        Raises:
            StepGateError: If the current step's gate is closed.
        """
        if self.is_last_step:
            return self.current_step
        reasons = self.gate_reasons()
        if reasons:
            raise StepGateError(self.current_step.value, reasons)
        self._index += 1
        self._logger.debug("step_advanced", step=self.current_step.value)
        return self.current_step

    def retreat(self) -> WizardStep:
        """Move to the previous step. Does nothing on the first step."""
        if self._index > 0:
            self._index -= 1
        return self.current_step

    # === Capture ===

    def _require_readings(self) -> ReadingCapture:
        if self._readings is None:
            raise ShiftClosingError("Shift, topology and prices must be loaded first")
        return self._readings

    def _save(self, section: str, data: dict[str, Any]) -> None:
        if self.shift is not None:
            self._store.save(scope_key(self.shift.id, section), data)

    def update_pump_reading(self, pump_id: str, field: str, raw_value: Any) -> PumpClosingReading:
        readings = self._require_readings()
        reading = readings.update_pump_reading(pump_id, field, raw_value)
        self._acknowledged_variance = None
        self._save("readings", readings.snapshot())
        return reading

    def update_tank_reading(self, tank_id: str, field: str, raw_value: Any) -> TankClosingReading:
        readings = self._require_readings()
        reading = readings.update_tank_reading(tank_id, field, raw_value)
        self._save("readings", readings.snapshot())
        return reading

    def update_collection(
        self, island_id: str, method: PaymentMethod | str, amount: Any
    ) -> IslandActualCollection:
        """Record money collected at an island. Resets any variance acknowledgement."""
        collection = self._collections.record_actual_collection(island_id, method, amount)
        self._acknowledged_variance = None
        self._save("collections", self._collections.snapshot())
        self._rebuild_steps()
        return collection

    def acknowledge_variance(self, acknowledged: bool = True) -> None:
        """Accept the current grand variance. Any later change to it needs a new acknowledgement."""
        self._acknowledged_variance = self.grand_variance.variance if acknowledged else None
        self._logger.info(
            "variance_acknowledged",
            acknowledged=acknowledged,
            variance=str(self.grand_variance.variance),
        )

    @property
    def variance_acknowledged(self) -> bool:
        return (
            self._acknowledged_variance is not None
            and self._acknowledged_variance == self.grand_variance.variance
        )

    def set_end_time(self, end_time: datetime) -> None:
        self._end_time = end_time

    @property
    def end_time(self) -> datetime:
        return self._end_time or self._clock()

    # === Debt ===

    @property
    def debt(self) -> DebtAllocationEngine:
        if self._debt is None:
            raise ShiftClosingError("Shift, topology and prices must be loaded first")
        return self._debt

    @property
    def total_collected_debt(self) -> Decimal:
        return self._collections.total_collected_debt()

    @property
    def debt_allocation_complete(self) -> bool:
        return self._debt_complete

    def open_debt_allocation(self, debtor: Debtor | str) -> AllocationDraft:
        if isinstance(debtor, str):
            match = next((d for d in self.debtors if d.id == debtor), None)
            if match is None:
                raise KeyError(debtor)
            debtor = match
        return self.debt.open_allocation(debtor)

    def add_debt_allocation(
        self,
        draft: AllocationDraft,
        vehicle_plate: str | None = None,
        amount: Any = None,
        vehicle_model: str = "",
        description: str | None = None,
    ) -> DebtAllocation:
        return self.debt.add_allocation(
            draft,
            vehicle_plate=vehicle_plate,
            amount=amount,
            vehicle_model=vehicle_model,
            description=description,
        )

    def remove_debt_allocation(self, allocation_id: str) -> DebtAllocation:
        return self.debt.remove_allocation(allocation_id)

    async def submit_debt_allocations(self) -> AllocationBatchReport:
        """Save every allocation to the debtor ledger.

        On full or partial success the debt step is done and leaves the step
        list for the rest of the session.
        """
        engine = self.debt
        report = await engine.submit(self._gateway)
        if self._discard_if_inactive("debt_records"):
            return report
        if engine.complete:
            self._debt_complete = True
            self._rebuild_steps()
        return report

    # === Derived views ===

    @property
    def pump_readings(self) -> dict[str, PumpClosingReading]:
        return dict(self._readings.pump_readings) if self._readings else {}

    @property
    def tank_readings(self) -> dict[str, TankClosingReading]:
        return dict(self._readings.tank_readings) if self._readings else {}

    @property
    def collections(self) -> dict[str, IslandActualCollection]:
        return dict(self._collections.collections)

    @property
    def expected_collections_by_island(self) -> list[IslandExpectedCollection]:
        if self.topology is None or self.resolver is None or self._readings is None:
            return []
        return calculate_expected_collections(
            self.topology, self._readings.pump_readings, self.resolver
        )

    @property
    def variance_by_island(self) -> list[IslandVariance]:
        return self._collections.variance_by_island(self.expected_collections_by_island)

    @property
    def grand_variance(self) -> VarianceResult:
        return self._collections.grand_total(self.expected_collections_by_island)

    @property
    def pricing_warnings(self) -> list[PricingWarning]:
        if self.topology is None or self.resolver is None:
            return []
        return self.resolver.warnings_for(self.topology)

    @property
    def pre_closing_report(self) -> PreClosingReport:
        return check_pre_closing(self.shift, self._clock())

    @property
    def payload_preview(self) -> ClosingPayload:
        state = ClosingState(
            shift_id=self.shift.id if self.shift else None,
            end_time=self.end_time,
            pump_readings=self._readings.pump_readings if self._readings else {},
            tank_readings=self._readings.tank_readings if self._readings else {},
            collections=self._collections.collections,
            expected=self.expected_collections_by_island,
        )
        station_id = self.station_id or (self.shift.station_id if self.shift else None)
        return build_closing_payload(
            state, self.recorder, station_id=station_id, generated_at=self._clock()
        )

    @property
    def validation_errors(self) -> list[str]:
        return validate_closing_payload(self.payload_preview).errors

    @property
    def payload_summary(self) -> PayloadSummary:
        return summarize_payload(self.payload_preview)

    # === Closing ===

    def close_blockers(self) -> list[str]:
        """Everything still preventing the shift from being closed."""
        blockers: list[str] = []
        if self._submitted:
            blockers.append("Shift closing was already submitted")
        if not self.is_last_step:
            blockers.append("Not at the summary step")
        blockers.extend(self.validation_errors)
        if not (self.grand_variance.is_exact or self.variance_acknowledged):
            blockers.append("Collections variance must be exact or acknowledged")
        if self.total_collected_debt > 0 and not self._debt_complete:
            blockers.append("Collected debt must be fully allocated and saved")
        return blockers

    @property
    def can_close_shift(self) -> bool:
        return not self.close_blockers()

    async def submit_closing(self) -> dict[str, Any] | None:
        """Send the closing payload and mark the session submitted.

        Raises:
            ClosingSubmissionError: If the shift cannot be closed yet (not
                retryable) or the API rejected the request (retryable; the
                shift stays open).
        """
        blockers = self.close_blockers()
        if blockers:
            raise ClosingSubmissionError(
                "Shift cannot be closed yet", errors=blockers, retryable=False
            )

        if self.shift is None:
            raise ClosingSubmissionError("No shift loaded", retryable=False)
        payload = self.payload_preview
        try:
            result = await self._gateway.close_shift(self.shift.id, payload.to_dict())
        except StationAPIError as e:
            self._logger.error(
                "closing_failed", shift_id=self.shift.id, status_code=e.status_code, error=str(e)
            )
            raise ClosingSubmissionError(
                f"Failed to close shift: {e}", errors=[str(e)], retryable=True
            ) from e

        if self._discard_if_inactive("close_shift"):
            return None

        self._submitted = True
        self._store.clear(scope_key(self.shift.id, ""))
        self._logger.info(
            "closing_submitted",
            shift_id=self.shift.id,
            pumps=payload.metadata.total_pumps,
            tanks=payload.metadata.total_tanks,
            islands=payload.metadata.total_islands,
        )
        clear_closing_context()
        return result
