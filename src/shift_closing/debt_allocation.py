"""Distributing the debt collected during a shift to individual debtors.

The collections tolerance does not apply here: allocations must add up to
the collected debt exactly before the batch can be submitted. Submission is
not atomic. Each record is sent on its own and failures are collected so
that one bad record does not hold up the rest.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

import structlog

from shift_closing.errors import AllocationValidationError, DebtAllocationError
from shift_closing.models import Debtor
from shift_closing.money import CENT, ZERO, parse_amount
from shift_closing.reconciliation import CollectionsLedger

logger = structlog.get_logger(__name__)

VEHICLE_PLATE_PATTERN = re.compile(r"^[A-Z0-9\s]+$")


class DebtLedgerClient(Protocol):
    """Anything that can persist a single fuel debt record."""

    async def record_fuel_debt(self, record: dict[str, Any]) -> Any: ...


def default_description(shift_id: str) -> str:
    return f"Fuel purchase - Shift {shift_id}"


def search_debtors(debtors: Iterable[Debtor], text: str) -> list[Debtor]:
    """Filter debtors by name, phone or email (case-insensitive)."""
    needle = text.strip().lower()
    if not needle:
        return list(debtors)
    return [
        d
        for d in debtors
        if any(needle in (value or "").lower() for value in (d.name, d.phone, d.email))
    ]


@dataclass(frozen=True)
class AllocationDraft:
    """An allocation being filled in for a selected debtor."""

    debtor: Debtor
    amount: Decimal
    description: str
    vehicle_plate: str = ""
    vehicle_model: str = ""


@dataclass(frozen=True)
class DebtAllocation:
    id: str
    debtor_id: str
    debtor_name: str
    vehicle_plate: str
    amount: Decimal
    description: str
    shift_id: str
    station_id: str | None
    recorded_by_id: str | None
    created_at: datetime
    debtor_phone: str | None = None
    debtor_email: str | None = None
    vehicle_model: str = ""

    def to_record(self) -> dict[str, Any]:
        """Wire shape for the debtor ledger's record-fuel-debt call."""
        return {
            "debtorId": self.debtor_id,
            "debtorName": self.debtor_name,
            "debtorPhone": self.debtor_phone,
            "stationId": self.station_id,
            "shiftId": self.shift_id,
            "recordedById": self.recorded_by_id,
            "amount": self.amount,
            "vehiclePlate": self.vehicle_plate,
            "vehicleModel": self.vehicle_model,
            "description": self.description
            or f"Fuel debt from shift {self.shift_id} - {self.vehicle_plate}",
            "transactionDate": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AllocationFailure:
    allocation: DebtAllocation
    error: str


class BatchOutcome(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class AllocationBatchReport:
    """Result of sending every allocation to the debtor ledger."""

    successes: list[DebtAllocation] = field(default_factory=list)
    failures: list[AllocationFailure] = field(default_factory=list)

    @property
    def outcome(self) -> BatchOutcome:
        if not self.failures:
            return BatchOutcome.ALL_SUCCEEDED
        if self.successes:
            return BatchOutcome.PARTIAL
        return BatchOutcome.FAILED

    @property
    def proceed(self) -> bool:
        """Partial success still lets the workflow move on; total failure does not."""
        return self.outcome != BatchOutcome.FAILED

    @property
    def message(self) -> str:
        if self.outcome == BatchOutcome.ALL_SUCCEEDED:
            return f"All {len(self.successes)} debt records saved"
        if self.outcome == BatchOutcome.PARTIAL:
            return f"{len(self.successes)} debt records saved, {len(self.failures)} failed"
        return f"All {len(self.failures)} debt records failed to save"


class DebtAllocationEngine:
    """Holds the allocation list for one shift's collected debt.

    The debt total is read from the collections ledger on every access, so
    editing an island's debt amount is reflected immediately.
    """

    def __init__(
        self,
        collections: CollectionsLedger,
        shift_id: str,
        station_id: str | None = None,
        recorded_by_id: str | None = None,
    ):
        self._collections = collections
        self.shift_id = shift_id
        self.station_id = station_id
        self.recorded_by_id = recorded_by_id
        self._allocations: list[DebtAllocation] = []
        self._complete = False
        self._logger = logger.bind(component="debt_allocation", shift_id=shift_id)

    @property
    def total_collected_debt(self) -> Decimal:
        return self._collections.total_collected_debt()

    @property
    def allocations(self) -> tuple[DebtAllocation, ...]:
        return tuple(self._allocations)

    @property
    def total_allocated(self) -> Decimal:
        return sum((a.amount for a in self._allocations), ZERO)

    @property
    def remaining_debt(self) -> Decimal:
        return self.total_collected_debt - self.total_allocated

    @property
    def can_submit(self) -> bool:
        return self.remaining_debt == 0

    @property
    def complete(self) -> bool:
        return self._complete

    def open_allocation(self, debtor: Debtor) -> AllocationDraft:
        """Start an allocation for a debtor, prefilled with the remaining debt."""
        return AllocationDraft(
            debtor=debtor,
            amount=max(self.remaining_debt, ZERO),
            description=default_description(self.shift_id),
        )

    def add_allocation(
        self,
        draft: AllocationDraft,
        vehicle_plate: str | None = None,
        amount: Any = None,
        vehicle_model: str = "",
        description: str | None = None,
    ) -> DebtAllocation:
        """Validate a draft and append it to the allocation list.

        Raises:
            AllocationValidationError: If the plate is missing or malformed,
                or the amount is below one cent or above the remaining debt.
        """
        if self._complete:
            raise DebtAllocationError("Debt allocations were already submitted")

        plate = (vehicle_plate if vehicle_plate is not None else draft.vehicle_plate)
        plate = (plate or "").strip().upper()
        if not plate:
            raise AllocationValidationError("vehicle_plate", "Vehicle plate is required")
        if not VEHICLE_PLATE_PATTERN.match(plate):
            raise AllocationValidationError(
                "vehicle_plate", "Vehicle plate may only contain letters, digits and spaces"
            )

        value = draft.amount if amount is None else parse_amount(amount)
        if value < CENT:
            raise AllocationValidationError("amount", "Amount must be at least 0.01")
        remaining = self.remaining_debt
        if value > remaining:
            raise AllocationValidationError(
                "amount", f"Amount cannot exceed remaining debt of {remaining}"
            )

        text = (description if description is not None else draft.description) or ""
        allocation = DebtAllocation(
            id=str(uuid.uuid4()),
            debtor_id=draft.debtor.id,
            debtor_name=draft.debtor.name,
            debtor_phone=draft.debtor.phone,
            debtor_email=draft.debtor.email,
            vehicle_plate=plate,
            vehicle_model=(vehicle_model or draft.vehicle_model or "").strip(),
            amount=value,
            description=text.strip() or default_description(self.shift_id),
            shift_id=self.shift_id,
            station_id=self.station_id,
            recorded_by_id=self.recorded_by_id,
            created_at=datetime.now(UTC),
        )
        self._allocations.append(allocation)
        self._logger.info(
            "debt_allocated",
            debtor_id=allocation.debtor_id,
            amount=str(allocation.amount),
            remaining=str(self.remaining_debt),
        )
        return allocation

    def remove_allocation(self, allocation_id: str) -> DebtAllocation:
        for index, allocation in enumerate(self._allocations):
            if allocation.id == allocation_id:
                del self._allocations[index]
                self._logger.info("debt_allocation_removed", allocation_id=allocation_id)
                return allocation
        raise KeyError(allocation_id)

    async def submit(self, ledger_client: DebtLedgerClient) -> AllocationBatchReport:
        """Send every allocation to the debtor ledger, one at a time.

        Raises:
            DebtAllocationError: If the allocations do not add up to the
                collected debt exactly.
        """
        if not self.can_submit:
            raise DebtAllocationError(
                f"Debt is not fully allocated; remaining {self.remaining_debt}"
            )

        report = AllocationBatchReport()
        for allocation in self._allocations:
            try:
                await ledger_client.record_fuel_debt(allocation.to_record())
            except Exception as e:
                self._logger.warning(
                    "debt_record_failed",
                    allocation_id=allocation.id,
                    debtor_id=allocation.debtor_id,
                    error=str(e),
                )
                report.failures.append(AllocationFailure(allocation=allocation, error=str(e)))
            else:
                report.successes.append(allocation)

        if report.proceed:
            self._complete = True
        self._logger.info(
            "debt_batch_submitted",
            outcome=report.outcome.value,
            successes=len(report.successes),
            failures=len(report.failures),
        )
        return report

    def reset(self) -> None:
        self._allocations.clear()
        self._complete = False
