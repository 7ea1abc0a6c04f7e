"""Fuel Shift Closing - reconciliation workflow for closing fuel station shifts."""

__version__ = "0.1.0"

from shift_closing.assets import Island, Pump, StationTopology, Tank
from shift_closing.clients import ShiftClosingGateway, StationAPIClient, StationAPIError
from shift_closing.config import configure_logging, get_settings
from shift_closing.debt_allocation import (
    AllocationBatchReport,
    BatchOutcome,
    DebtAllocation,
    DebtAllocationEngine,
    search_debtors,
)
from shift_closing.errors import (
    AllocationValidationError,
    ClosingSubmissionError,
    DebtAllocationError,
    ReferenceDataError,
    ShiftClosingError,
    StepGateError,
)
from shift_closing.expected import IslandExpectedCollection, calculate_expected_collections
from shift_closing.models import Debtor, Product, Recorder, Shift, ShiftStatus
from shift_closing.payload import (
    ClosingPayload,
    ValidationResult,
    build_closing_payload,
    validate_closing_payload,
)
from shift_closing.pricing import PriceResolver
from shift_closing.readings import ReadingCapture
from shift_closing.reconciliation import (
    VARIANCE_TOLERANCE,
    CollectionsLedger,
    PaymentMethod,
    VarianceStatus,
    classify_variance,
)
from shift_closing.wizard import ShiftClosingWizard, WizardStep, build_step_sequence

__all__ = [
    # Version
    "__version__",
    # Domain records
    "Shift",
    "ShiftStatus",
    "Product",
    "Debtor",
    "Recorder",
    "StationTopology",
    "Island",
    "Pump",
    "Tank",
    # Engines
    "PriceResolver",
    "ReadingCapture",
    "calculate_expected_collections",
    "IslandExpectedCollection",
    "CollectionsLedger",
    "PaymentMethod",
    "VarianceStatus",
    "VARIANCE_TOLERANCE",
    "classify_variance",
    "DebtAllocationEngine",
    "DebtAllocation",
    "AllocationBatchReport",
    "BatchOutcome",
    "search_debtors",
    "ClosingPayload",
    "ValidationResult",
    "build_closing_payload",
    "validate_closing_payload",
    # Wizard
    "ShiftClosingWizard",
    "WizardStep",
    "build_step_sequence",
    # Errors
    "ShiftClosingError",
    "ReferenceDataError",
    "StepGateError",
    "DebtAllocationError",
    "AllocationValidationError",
    "ClosingSubmissionError",
    # Clients
    "ShiftClosingGateway",
    "StationAPIClient",
    "StationAPIError",
    # Config
    "get_settings",
    "configure_logging",
]
