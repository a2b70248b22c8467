"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Period snapshots are read months later to answer "how did we do in Q1".
If a snapshot, a company summary, or a close log row could be edited after
the fact, every historical report built on them becomes unverifiable.  The
same goes for periods: once archived they are history.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError aborts the flush.  The
database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable              | What is allowed
----------------------|-----------------------------|------------------------------
PeriodSnapshot        | ALWAYS (from creation)      | nothing
CompanyPeriodSummary  | ALWAYS (from creation)      | nothing
PeriodCloseLog        | ALWAYS (from creation)      | nothing
FiscalPeriod          | structure: always           | status along lifecycle edges,
                      | everything: once archived   | closure metadata
                      | DELETE: always              |

updated_at / updated_by_id are audit metadata and may always change.
The FiscalPeriod version column is maintained by SQLAlchemy and is ignored.

===============================================================================
USAGE
===============================================================================

    register_immutability_listeners()  # Called once at startup

    # In tests that deliberately bypass the rules:
    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from okr_kernel.exceptions import ImmutabilityViolationError
from okr_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_PERIOD_STRUCTURAL_FIELDS = frozenset({
    "company_id",
    "period_type",
    "period_code",
    "parent_period_id",
    "starts_at",
    "ends_at",
})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target, ignore: frozenset[str] = frozenset()) -> list[str]:
    insp = inspect(target)
    changed = []
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS or attr.key in ignore:
            continue
        if insp.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


# =============================================================================
# Append-only records
# =============================================================================


def _check_append_only_update(mapper, connection, target):
    """Snapshots, company summaries and close logs never change after INSERT."""
    changed = _changed_fields(target)
    if changed:
        entity_type = type(target).__name__
        raise _blocked(
            entity_type,
            target.id,
            "UPDATE",
            f"{entity_type} records are immutable (attempted to change '{changed[0]}')",
            field=changed[0],
        )


def _check_append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    raise _blocked(
        entity_type,
        target.id,
        "DELETE",
        f"{entity_type} records cannot be deleted",
    )


# =============================================================================
# FiscalPeriod
# =============================================================================


def _check_fiscal_period_immutability(mapper, connection, target):
    """
    Guard FiscalPeriod updates.

    Allowed:
        status changes along a lifecycle edge (see domain/lifecycle.py),
        together with closure / forced-closure metadata.

    Blocked:
        any change to structural fields (code, type, parent, interval);
        any status change that is not a lifecycle edge;
        any change at all once the period was archived.
    """
    from okr_kernel.domain.lifecycle import PeriodStatus, is_allowed_transition

    status_history = get_history(target, "status")
    old_status = None
    if status_history.deleted:
        old_status = PeriodStatus(status_history.deleted[0])
    elif not status_history.added:
        old_status = PeriodStatus(target.status)

    if old_status == PeriodStatus.ARCHIVED:
        changed = _changed_fields(target, ignore=frozenset({"version"}))
        if changed:
            raise _blocked(
                "FiscalPeriod",
                target.id,
                "UPDATE",
                f"Cannot modify field '{changed[0]}' on archived period {target.period_code}",
                field=changed[0],
            )

    if status_history.deleted and status_history.added:
        new_status = PeriodStatus(status_history.added[0])
        if old_status != new_status and not is_allowed_transition(old_status, new_status):
            raise _blocked(
                "FiscalPeriod",
                target.id,
                "UPDATE",
                f"Status change {old_status.value} -> {new_status.value} is not a lifecycle edge",
                field="status",
            )

    for key in _PERIOD_STRUCTURAL_FIELDS:
        if get_history(target, key).deleted:
            raise _blocked(
                "FiscalPeriod",
                target.id,
                "UPDATE",
                f"Field '{key}' of period {target.period_code} is fixed at creation",
                field=key,
            )


def _check_fiscal_period_delete(mapper, connection, target):
    raise _blocked(
        "FiscalPeriod",
        target.id,
        "DELETE",
        f"Period {target.period_code} cannot be deleted; archive it instead",
    )


# =============================================================================
# Registration
# =============================================================================


def _append_only_models():
    from okr_kernel.models.period_close_log import PeriodCloseLog
    from okr_kernel.models.period_snapshot import CompanyPeriodSummary, PeriodSnapshot

    return (PeriodSnapshot, CompanyPeriodSummary, PeriodCloseLog)


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call repeatedly.
    """
    from okr_kernel.models.fiscal_period import FiscalPeriod

    for model in _append_only_models():
        if not event.contains(model, "before_update", _check_append_only_update):
            event.listen(model, "before_update", _check_append_only_update)
        if not event.contains(model, "before_delete", _check_append_only_delete):
            event.listen(model, "before_delete", _check_append_only_delete)

    if not event.contains(FiscalPeriod, "before_update", _check_fiscal_period_immutability):
        event.listen(FiscalPeriod, "before_update", _check_fiscal_period_immutability)
    if not event.contains(FiscalPeriod, "before_delete", _check_fiscal_period_delete):
        event.listen(FiscalPeriod, "before_delete", _check_fiscal_period_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    from okr_kernel.models.fiscal_period import FiscalPeriod

    for model in _append_only_models():
        _safe_remove_listener(model, "before_update", _check_append_only_update)
        _safe_remove_listener(model, "before_delete", _check_append_only_delete)

    _safe_remove_listener(FiscalPeriod, "before_update", _check_fiscal_period_immutability)
    _safe_remove_listener(FiscalPeriod, "before_delete", _check_fiscal_period_delete)
