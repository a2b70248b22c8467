"""
Typed Exception Hierarchy for the OKR period kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Lifecycle failures must be distinguishable by callers without parsing
message text. A close blocked by incomplete data is handled very differently
from a close attempted on an archived period, and both differ from a
database outage.

Every exception here:
  1. Has its own class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, stable across releases)
  3. Carries structured DATA (period ids, blocking children, the report)

Example:
    try:
        transitions.transition(period_id, PeriodStatus.CLOSED, actor_id)
    except PeriodBlockedError as e:
        show_incomplete(e.report)          # what exactly is missing
    except ChildrenNotReadyError as e:
        show_children(e.blocking_children)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    OkrKernelError (base)
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- FiscalYearExistsError
    |   +-- InvalidTransitionError
    |   +-- MissingForceReasonError
    |   +-- ChildrenNotReadyError
    |   +-- PeriodBlockedError
    |   +-- TransitionAuthorityError
    |   +-- PeriodArchivedError
    |
    +-- SnapshotError
    |   +-- SnapshotAlreadyExistsError
    |   +-- SnapshotNotAllowedError
    |   +-- ChildSnapshotsMissingError
    |   +-- SnapshotRecordError
    |
    +-- ContinuityError
    |   +-- ObjectiveNotFoundError
    |   +-- InvalidContinuityError
    |
    +-- WorkflowError
    |   +-- CloseSequenceError
    |
    +-- PersistenceError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | Retry? | When Raised
-------------|-----------------------------|--------|-----------------------------
Period       | PERIOD_NOT_FOUND            | no     | Unknown period id / code
             | FISCAL_YEAR_EXISTS          | no     | Year already materialized
             | INVALID_TRANSITION          | no     | Edge not in the state machine
             | MISSING_FORCE_REASON        | no     | force=True, blank reason
             | CHILDREN_NOT_READY          | no     | Aggregating before children close
             | PERIOD_BLOCKED              | no     | Leaf close with incomplete items
             | TRANSITION_NOT_AUTHORIZED   | no     | Actor lacks the required role
             | PERIOD_ARCHIVED             | no     | Any write against an archived period
-------------|-----------------------------|--------|-----------------------------
Snapshot     | SNAPSHOT_ALREADY_EXISTS     | no     | (period, org) already captured
             | SNAPSHOT_NOT_ALLOWED        | no     | Period not closed
             | CHILD_SNAPSHOTS_MISSING     | no     | Rollup with uncaptured children
             | SNAPSHOT_RECORD_INVALID     | no     | Historical payload unreadable
-------------|-----------------------------|--------|-----------------------------
Continuity   | OBJECTIVE_NOT_FOUND         | no     | Unknown objective id
             | INVALID_CONTINUITY          | no     | Self-link, duplicate, bad type
-------------|-----------------------------|--------|-----------------------------
Workflow     | CLOSE_SEQUENCE_VIOLATION    | no     | Wizard step out of order
-------------|-----------------------------|--------|-----------------------------
Persistence  | PERSISTENCE_ERROR           | yes    | Store failure (whole op retryable)
             | CONCURRENT_MODIFICATION     | yes    | Version conflict on a period row
-------------|-----------------------------|--------|-----------------------------
Immutability | IMMUTABILITY_VIOLATION      | no     | Mutating an append-only record
"""


class OkrKernelError(Exception):
    """
    Base exception for all OKR kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "OKR_KERNEL_ERROR"


# Period-related exceptions


class PeriodError(OkrKernelError):
    """Base exception for period-related errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """No period found for the given identifier or code."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Fiscal period not found: {period_ref}")


class FiscalYearExistsError(PeriodError):
    """The fiscal year has already been created for this company."""

    code: str = "FISCAL_YEAR_EXISTS"

    def __init__(self, company_id: str, year: int):
        self.company_id = company_id
        self.year = year
        super().__init__(f"Fiscal year {year} already exists for company {company_id}")


class InvalidTransitionError(PeriodError):
    """Requested status change is not an edge of the lifecycle."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, period_code: str, from_status: str, to_status: str):
        self.period_code = period_code
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Period {period_code} cannot move from {from_status} to {to_status}"
        )


class MissingForceReasonError(PeriodError):
    """Forced closure requested without a non-blank reason."""

    code: str = "MISSING_FORCE_REASON"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Forced closure of {period_code} requires a reason")


class ChildrenNotReadyError(PeriodError):
    """
    Aggregating period cannot close while a child period is still open.

    Carries the specific blocking children as (period_code, status) pairs.
    """

    code: str = "CHILDREN_NOT_READY"

    def __init__(
        self,
        period_code: str,
        closed_count: int,
        total_count: int,
        blocking_children: list[tuple[str, str]],
    ):
        self.period_code = period_code
        self.closed_count = closed_count
        self.total_count = total_count
        self.blocking_children = blocking_children
        pending = ", ".join(f"{code} ({status})" for code, status in blocking_children)
        super().__init__(
            f"Period {period_code} has {closed_count}/{total_count} children closed; "
            f"still open: {pending}"
        )


class PeriodBlockedError(PeriodError):
    """
    Leaf period close blocked by incomplete items.

    ``report`` is the IncompleteItemsReport computed at the moment of the
    attempt. The operator either fixes the data or retries with force.
    """

    code: str = "PERIOD_BLOCKED"

    def __init__(self, period_code: str, report):
        self.period_code = period_code
        self.report = report
        super().__init__(
            f"Period {period_code} has {report.total_count} incomplete item(s): "
            f"{len(report.unapproved_sets)} unapproved goal set(s), "
            f"{len(report.krs_without_checkin)} key result(s) without check-in, "
            f"{len(report.zero_achievement_orgs)} organization(s) at zero achievement"
        )


class TransitionAuthorityError(PeriodError):
    """Actor does not hold the role required for this transition."""

    code: str = "TRANSITION_NOT_AUTHORIZED"

    def __init__(self, actor_id: str, required_role: str, actual_role: str, to_status: str):
        self.actor_id = actor_id
        self.required_role = required_role
        self.actual_role = actual_role
        self.to_status = to_status
        super().__init__(
            f"Actor {actor_id} with role {actual_role} cannot move a period to "
            f"{to_status}; requires {required_role}"
        )


class PeriodArchivedError(PeriodError):
    """Archived periods accept no further writes."""

    code: str = "PERIOD_ARCHIVED"

    def __init__(self, period_code: str, operation: str):
        self.period_code = period_code
        self.operation = operation
        super().__init__(f"Cannot {operation}: period {period_code} is archived")


# Snapshot-related exceptions


class SnapshotError(OkrKernelError):
    """Base exception for snapshot and rollup errors."""

    code: str = "SNAPSHOT_ERROR"


class SnapshotAlreadyExistsError(SnapshotError):
    """A snapshot set already exists for the period."""

    code: str = "SNAPSHOT_ALREADY_EXISTS"

    def __init__(self, period_code: str, existing_count: int):
        self.period_code = period_code
        self.existing_count = existing_count
        super().__init__(
            f"Period {period_code} already has {existing_count} snapshot(s); "
            "snapshots are captured exactly once"
        )


class SnapshotNotAllowedError(SnapshotError):
    """Snapshots are only captured for closed periods."""

    code: str = "SNAPSHOT_NOT_ALLOWED"

    def __init__(self, period_code: str, status: str):
        self.period_code = period_code
        self.status = status
        super().__init__(
            f"Cannot snapshot period {period_code} in status {status}; it must be closed"
        )


class ChildSnapshotsMissingError(SnapshotError):
    """Rollup requires every child period to have been captured."""

    code: str = "CHILD_SNAPSHOTS_MISSING"

    def __init__(self, period_code: str, missing_children: list[str]):
        self.period_code = period_code
        self.missing_children = missing_children
        super().__init__(
            f"Cannot roll up {period_code}: no snapshots for child period(s) "
            f"{', '.join(missing_children)}"
        )


class SnapshotRecordError(SnapshotError):
    """A stored snapshot record could not be decoded."""

    code: str = "SNAPSHOT_RECORD_INVALID"

    def __init__(self, record_type: str, schema_version, reason: str):
        self.record_type = record_type
        self.schema_version = schema_version
        self.reason = reason
        super().__init__(
            f"Unreadable {record_type} record (schema v{schema_version}): {reason}"
        )


# Continuity-related exceptions


class ContinuityError(OkrKernelError):
    """Base exception for objective continuity errors."""

    code: str = "CONTINUITY_ERROR"


class ObjectiveNotFoundError(ContinuityError):
    """Objective with given ID was not found."""

    code: str = "OBJECTIVE_NOT_FOUND"

    def __init__(self, objective_id: str):
        self.objective_id = objective_id
        super().__init__(f"Objective not found: {objective_id}")


class InvalidContinuityError(ContinuityError):
    """Continuity edge rejected."""

    code: str = "INVALID_CONTINUITY"

    def __init__(self, source_objective_id: str, target_objective_id: str, reason: str):
        self.source_objective_id = source_objective_id
        self.target_objective_id = target_objective_id
        self.reason = reason
        super().__init__(
            f"Invalid continuity {source_objective_id} -> {target_objective_id}: {reason}"
        )


# Workflow-related exceptions


class WorkflowError(OkrKernelError):
    """Base exception for close workflow errors."""

    code: str = "WORKFLOW_ERROR"


class CloseSequenceError(WorkflowError):
    """A close workflow step was requested out of order."""

    code: str = "CLOSE_SEQUENCE_VIOLATION"

    def __init__(self, period_code: str, current_step: str, requested_step: str):
        self.period_code = period_code
        self.current_step = current_step
        self.requested_step = requested_step
        super().__init__(
            f"Close workflow for {period_code} is at step {current_step}; "
            f"cannot {requested_step}"
        )


# Persistence-related exceptions


class PersistenceError(OkrKernelError):
    """
    Underlying store failure.

    Opaque to callers; the detail goes to the log. The whole operation is
    safe to retry because every transition is a single atomic write.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}")


class ConcurrentModificationError(PersistenceError):
    """Another writer changed the period between read and write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            operation=f"update {entity_type}",
            detail=f"{entity_type} {entity_id} was modified by another transaction",
        )


# Immutability-related exceptions


class ImmutabilityError(OkrKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Snapshots, company summaries and close log rows are immutable from
    creation; archived periods are immutable entirely.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
