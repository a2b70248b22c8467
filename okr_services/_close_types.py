"""
okr_services._close_types -- DTOs for the guided close workflow.

Responsibility:
    Define the frozen dataclasses the close wizard passes between steps:
    the step enum, the pre-close health check, the wizard state, and the
    final result.

Architecture position:
    Services -- these types live here because the orchestrator that
    produces and consumes them lives here.  They depend only on kernel
    DTOs.

Invariants enforced:
    - All DTOs are frozen; each wizard call returns a new state.
    - Step order: review -> incomplete -> confirm -> processing -> complete.
      ``cancelled`` is terminal and reachable from any step before
      processing.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from okr_kernel.domain.dtos import ChildPeriodsStatus, IncompleteItemsReport, SnapshotResult
from okr_kernel.domain.dtos import TransitionOutcome


class WizardStep(str, Enum):
    """Position of a close run in the guided workflow."""
    REVIEW = "review"
    INCOMPLETE = "incomplete"
    CONFIRM = "confirm"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CloseHealth:
    """Pre-close diagnostic of one period."""
    period_id: UUID
    period_code: str
    status: str
    is_leaf: bool
    children: ChildPeriodsStatus
    checked_at: datetime
    incomplete_items: IncompleteItemsReport | None = None

    @property
    def blocking_count(self) -> int:
        return self.incomplete_items.total_count if self.incomplete_items else 0

    @property
    def children_ready(self) -> bool:
        return self.is_leaf or self.children.can_aggregate

    @property
    def can_close_cleanly(self) -> bool:
        """True if the close would pass without force."""
        return self.children_ready and self.blocking_count == 0

    @property
    def can_force(self) -> bool:
        """Only a leaf with incomplete items can be force-closed."""
        return self.is_leaf and self.blocking_count > 0


@dataclass(frozen=True)
class CloseWizardState:
    """Where a close run stands.  Every wizard call returns a new one."""
    run_id: UUID
    correlation_id: str
    period_id: UUID
    period_code: str
    step: WizardStep
    started_by: UUID
    started_at: datetime
    health: CloseHealth | None = None
    force: bool = False
    force_reason: str | None = None
    acknowledged: bool = False
    confirmed: bool = False
    notes: str | None = None


@dataclass(frozen=True)
class CloseWizardResult:
    """Return type from execute()."""
    state: CloseWizardState
    transition: TransitionOutcome
    completed_at: datetime
    snapshot: SnapshotResult | None = None
    message: str = ""
