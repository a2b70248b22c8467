"""
Lifecycle -- Pure state-machine rules for fiscal periods.

Responsibility:
    Single source of truth for period statuses, the edges between them, the
    audit action each edge records, the operator actions offered per status,
    and elapsed/remaining progress of a period.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by the ORM
    listeners (allowed status edges), TransitionService (validation and log
    action), and the service layer (available actions, progress).

Invariants enforced:
    - Edges: upcoming->active, active->closing, closing->closed,
      closing->active (abort), closed->archived.  Nothing else.
    - archived is terminal.
    - Every edge maps to exactly one close-log action.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum


class PeriodType(str, Enum):
    """Granularity of a fiscal period. Years contain halves, halves contain quarters."""

    YEAR = "year"
    HALF = "half"
    QUARTER = "quarter"


# Depth of each level below the year
PERIOD_TYPE_DEPTH: dict[PeriodType, int] = {
    PeriodType.YEAR: 0,
    PeriodType.HALF: 1,
    PeriodType.QUARTER: 2,
}


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period.

    Contract: upcoming -> active -> closing -> closed -> archived, plus the
    abort edge closing -> active.
    """

    UPCOMING = "upcoming"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    ARCHIVED = "archived"


class CloseLogAction(str, Enum):
    PERIOD_ACTIVATED = "period_activated"
    CLOSE_INITIATED = "close_initiated"
    CLOSE_COMPLETED = "close_completed"
    FORCE_CLOSE = "force_close"
    SNAPSHOT_CREATED = "snapshot_created"
    ARCHIVE_MOVED = "archive_moved"
    REOPEN = "reopen"


class PeriodAction(str, Enum):
    """Operator-facing actions offered for a period in a given status."""

    ACTIVATE = "activate"
    START_CLOSE = "start_close"
    CONTINUE_CLOSE = "continue_close"
    CANCEL_CLOSE = "cancel_close"
    ARCHIVE = "archive"
    VIEW_SNAPSHOT = "view_snapshot"
    VIEW_HISTORY = "view_history"


# (from, to) -> audit action recorded for the edge.  closing->closed is
# recorded as FORCE_CLOSE instead when the close was forced.
TRANSITION_ACTIONS: dict[tuple[PeriodStatus, PeriodStatus], CloseLogAction] = {
    (PeriodStatus.UPCOMING, PeriodStatus.ACTIVE): CloseLogAction.PERIOD_ACTIVATED,
    (PeriodStatus.ACTIVE, PeriodStatus.CLOSING): CloseLogAction.CLOSE_INITIATED,
    (PeriodStatus.CLOSING, PeriodStatus.CLOSED): CloseLogAction.CLOSE_COMPLETED,
    (PeriodStatus.CLOSING, PeriodStatus.ACTIVE): CloseLogAction.REOPEN,
    (PeriodStatus.CLOSED, PeriodStatus.ARCHIVED): CloseLogAction.ARCHIVE_MOVED,
}

ALLOWED_TRANSITIONS: frozenset[tuple[PeriodStatus, PeriodStatus]] = frozenset(
    TRANSITION_ACTIONS
)

_AVAILABLE_ACTIONS: dict[PeriodStatus, tuple[PeriodAction, ...]] = {
    PeriodStatus.UPCOMING: (PeriodAction.ACTIVATE,),
    PeriodStatus.ACTIVE: (PeriodAction.START_CLOSE,),
    PeriodStatus.CLOSING: (PeriodAction.CONTINUE_CLOSE, PeriodAction.CANCEL_CLOSE),
    PeriodStatus.CLOSED: (PeriodAction.ARCHIVE, PeriodAction.VIEW_SNAPSHOT),
    PeriodStatus.ARCHIVED: (PeriodAction.VIEW_HISTORY,),
}


def is_allowed_transition(from_status: PeriodStatus | str, to_status: PeriodStatus | str) -> bool:
    """True iff (from_status, to_status) is a lifecycle edge."""
    return (PeriodStatus(from_status), PeriodStatus(to_status)) in ALLOWED_TRANSITIONS


def action_for_transition(
    from_status: PeriodStatus | str,
    to_status: PeriodStatus | str,
    forced: bool = False,
) -> CloseLogAction:
    """
    Audit action recorded for an edge.

    Raises:
        KeyError: If the pair is not a lifecycle edge.
    """
    edge = (PeriodStatus(from_status), PeriodStatus(to_status))
    action = TRANSITION_ACTIONS[edge]
    if forced and action == CloseLogAction.CLOSE_COMPLETED:
        return CloseLogAction.FORCE_CLOSE
    return action


def available_actions(status: PeriodStatus | str) -> tuple[PeriodAction, ...]:
    return _AVAILABLE_ACTIONS[PeriodStatus(status)]


@dataclass(frozen=True)
class PeriodProgress:
    """Elapsed/remaining view of a period at one instant."""

    total_days: int
    elapsed_days: int
    remaining_days: int
    progress_percent: Decimal

    @property
    def is_finished(self) -> bool:
        return self.remaining_days == 0


def compute_progress(starts_at: datetime, ends_at: datetime, now: datetime) -> PeriodProgress:
    """
    Progress of the half-open interval [starts_at, ends_at) at ``now``.

    Days are whole elapsed days; progress is clamped to 0..100 and rounded
    to one decimal place.
    """
    total_seconds = (ends_at - starts_at).total_seconds()
    total_days = (ends_at - starts_at).days
    if now <= starts_at:
        return PeriodProgress(total_days, 0, total_days, Decimal("0.0"))
    if now >= ends_at:
        return PeriodProgress(total_days, total_days, 0, Decimal("100.0"))

    elapsed = now - starts_at
    elapsed_days = elapsed.days
    ratio = Decimal(str(elapsed.total_seconds())) / Decimal(str(total_seconds)) * 100
    return PeriodProgress(
        total_days=total_days,
        elapsed_days=elapsed_days,
        remaining_days=total_days - elapsed_days,
        progress_percent=ratio.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
    )
