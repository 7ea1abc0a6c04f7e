"""Exceptions raised by the shift-closing workflow.

Malformed numeric input is never an error (it is coerced to zero) and a
partially failed debt batch is reported through ``AllocationBatchReport``
rather than raised. Everything here is scoped to a single step or action.
"""

from typing import Any


class ShiftClosingError(Exception):
    """Base exception for the shift-closing workflow."""


class ReferenceDataError(ShiftClosingError):
    """Prices, topology, shift or debtors could not be loaded."""

    def __init__(self, source: str, message: str, details: Any = None):
        super().__init__(message)
        self.source = source
        self.details = details


class StepGateError(ShiftClosingError):
    """The wizard was asked to leave a step whose gate is closed."""

    def __init__(self, step: str, reasons: list[str]):
        super().__init__(f"Cannot leave step {step}: {'; '.join(reasons) or 'blocked'}")
        self.step = step
        self.reasons = reasons


class DebtAllocationError(ShiftClosingError):
    """Debt allocations cannot be submitted in their current state."""


class AllocationValidationError(DebtAllocationError):
    """A single allocation was rejected before entering the list."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ClosingSubmissionError(ShiftClosingError):
    """Closing the shift failed; the shift remains open and can be retried."""

    def __init__(self, message: str, errors: list[str] | None = None, retryable: bool = True):
        super().__init__(message)
        self.errors = errors or []
        self.retryable = retryable
