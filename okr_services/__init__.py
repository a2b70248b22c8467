"""
okr_services -- Package init and public API.

Responsibility:
    Orchestration that composes the pure engines (okr_engines/) with
    database sessions and the active LifecyclePolicy: the incompleteness
    detector, snapshot capture and rollup, carry-over listing, the
    lifecycle coordinator, the guided close, and the result-envelope API.

Architecture position:
    Services -- stateful orchestration over engines + kernel + config.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        okr_services/ -> okr_engines/  (allowed)
        okr_services/ -> okr_kernel/   (allowed)
        okr_services/ -> okr_config/   (allowed)
        okr_engines/  -> okr_services/ (FORBIDDEN)
        okr_kernel/   -> okr_services/ (FORBIDDEN)

Audit relevance:
    This package is the import surface for external callers.
"""

from okr_kernel.logging_config import get_logger

logger = get_logger("services")

from okr_services._close_types import (  # noqa: E402
    CloseHealth,
    CloseWizardResult,
    CloseWizardState,
    WizardStep,
)
from okr_services.carry_over import CarryOverService  # noqa: E402
from okr_services.incomplete_items import IncompleteItemsDetector  # noqa: E402
from okr_services.lifecycle_api import LifecycleAPI, OperationResult  # noqa: E402
from okr_services.period_close_orchestrator import PeriodCloseOrchestrator  # noqa: E402
from okr_services.period_lifecycle import LifecycleOutcome, PeriodLifecycleService  # noqa: E402
from okr_services.snapshot_service import SnapshotService  # noqa: E402

__all__ = [
    "CarryOverService",
    "CloseHealth",
    "CloseWizardResult",
    "CloseWizardState",
    "IncompleteItemsDetector",
    "LifecycleAPI",
    "LifecycleOutcome",
    "OperationResult",
    "PeriodCloseOrchestrator",
    "PeriodLifecycleService",
    "SnapshotService",
    "WizardStep",
]
