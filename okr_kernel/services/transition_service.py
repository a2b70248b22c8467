"""
TransitionService -- the single authoritative entry point for period status.

Responsibility:
    Validates and applies one lifecycle transition of a fiscal period:
    upcoming -> active -> closing -> closed -> archived, plus the abort edge
    closing -> active.  Applies the close gates (incomplete items for a
    leaf, child readiness for a non-leaf), the forced-close override, and
    authority for archiving, then writes the new status and exactly one
    close log row in the same flush.

Architecture position:
    Kernel > Services -- imperative shell.
    The incomplete-items analysis is injected (``IncompleteItemsSource``);
    the kernel never computes achievement itself.

Invariants enforced:
    - Only lifecycle edges are accepted (domain/lifecycle.py); an archived
      period accepts nothing.
    - A successful transition writes exactly one PeriodCloseLog; a failed
      one writes none and leaves status untouched.
    - Leaf close: blocked while the detector reports any item, unless
      forced with a non-blank reason.  A forced close persists the report
      verbatim on the period and is logged as ``force_close``.
    - Non-leaf close: every direct child must be closed or archived.  There
      is no forced override; a force flag is ignored with a warning.
    - Read-validate-write happens under SELECT ... FOR UPDATE and the
      period's version column, so two concurrent writers cannot both win.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - PeriodNotFoundError, InvalidTransitionError, PeriodArchivedError,
      MissingForceReasonError, PeriodBlockedError, ChildrenNotReadyError,
      TransitionAuthorityError.
    - ConcurrentModificationError when the version check fails at flush.
    - PersistenceError for any other store failure (detail is logged).

Audit relevance:
    ``period_transitioned`` on success; ``period_close_blocked`` and
    ``period_transition_rejected`` on refusal; ``period_force_closed`` with
    the full report counts on an override.
"""

from enum import Enum
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.dtos import FiscalPeriodInfo, IncompleteItemsReport, TransitionOutcome
from okr_kernel.domain.lifecycle import (
    PeriodStatus,
    action_for_transition,
    is_allowed_transition,
)
from okr_kernel.exceptions import (
    ChildrenNotReadyError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingForceReasonError,
    PeriodArchivedError,
    PeriodBlockedError,
    PersistenceError,
    TransitionAuthorityError,
)
from okr_kernel.logging_config import LogContext, get_logger
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_kernel.services.base import BaseService
from okr_kernel.services.close_log_service import CloseLogService

logger = get_logger("services.transition")


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class CloseRole(str, Enum):
    """Authority of an actor over the period lifecycle, lowest first."""

    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"

    def has_authority(self, required: "CloseRole") -> bool:
        """At least the authority of ``required``."""
        hierarchy = {CloseRole.MEMBER: 0, CloseRole.MANAGER: 1, CloseRole.ADMIN: 2}
        return hierarchy[self] >= hierarchy[required]


class IncompleteItemsSource(Protocol):
    """Produces the incomplete-items report for a period (read-only)."""

    def detect(self, period_id: UUID) -> IncompleteItemsReport: ...


class CloseRoleResolver(Protocol):
    """Protocol for resolving an actor's lifecycle role."""

    def resolve(self, actor_id: UUID) -> CloseRole: ...


class DefaultCloseRoleResolver:
    """Default: all actors are ADMIN (unrestricted)."""

    def resolve(self, actor_id: UUID) -> CloseRole:
        return CloseRole.ADMIN


def _has_reason(force_reason: str | None) -> bool:
    return bool(force_reason and force_reason.strip())


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TransitionService(BaseService[FiscalPeriod]):
    """
    Applies lifecycle transitions to fiscal periods.

    Contract:
        transition() either returns a TransitionOutcome after flushing the
        new status and its log row, or raises a typed error having written
        nothing.

    Guarantees:
        - The outcome's ``log_id`` names the one log row written.
        - A forced outcome carries the exact report persisted on the period.

    Non-goals:
        - Does NOT capture snapshots; the lifecycle coordinator in
          okr_services does that after a successful close.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        detector: IncompleteItemsSource,
        clock: Clock | None = None,
        role_resolver: CloseRoleResolver | None = None,
        archive_requires_admin: bool = True,
    ):
        super().__init__(session)
        self._detector = detector
        self._clock = clock or SystemClock()
        self._role_resolver: CloseRoleResolver = role_resolver or DefaultCloseRoleResolver()
        self._archive_requires_admin = archive_requires_admin
        self._periods = PeriodSelector(session)
        self._close_log = CloseLogService(session, self._clock)

    def transition(
        self,
        period_id: UUID,
        to_status: PeriodStatus | str,
        actor_id: UUID,
        force: bool = False,
        force_reason: str | None = None,
        notes: str | None = None,
    ) -> TransitionOutcome:
        """
        Move a period to ``to_status``.

        Args:
            period_id: Period to transition.
            to_status: Target status.
            actor_id: Who requests the transition.
            force: Close a leaf period despite incomplete items.
            force_reason: Required (non-blank) whenever ``force`` is set.
            notes: Free-text closing notes stored on the period.

        Raises:
            See module docstring.
        """
        target = PeriodStatus(to_status)
        period = self._periods.get_for_update(period_id)
        source = period.status_enum

        with LogContext.bind(period_id=period.id, period_code=period.period_code):
            self._validate_edge(period, source, target)

            if force and not _has_reason(force_reason):
                self._reject(period, source, target, "missing_force_reason")
                raise MissingForceReasonError(period.period_code)

            if target == PeriodStatus.ARCHIVED:
                self._check_archive_authority(actor_id, target)

            forced = False
            report: IncompleteItemsReport | None = None
            warnings: list[str] = []

            if (source, target) == (PeriodStatus.CLOSING, PeriodStatus.CLOSED):
                if self._periods.is_leaf(period.id):
                    report = self._detector.detect(period.id)
                    if report.has_blocking_items:
                        if not force:
                            logger.warning(
                                "period_close_blocked",
                                extra={
                                    "unapproved_sets": len(report.unapproved_sets),
                                    "krs_without_checkin": len(report.krs_without_checkin),
                                    "zero_achievement_orgs": len(report.zero_achievement_orgs),
                                },
                            )
                            raise PeriodBlockedError(period.period_code, report)
                        forced = True
                else:
                    if force:
                        warnings.append("force_ignored_for_non_leaf_period")
                        logger.warning(
                            "force_ignored_for_non_leaf_period",
                            extra={"force_reason": force_reason},
                        )
                    self._check_children_ready(period, source, target)

            return self._apply(
                period,
                source,
                target,
                actor_id,
                forced=forced,
                force_reason=force_reason if forced else None,
                report=report,
                notes=notes,
                warnings=tuple(warnings),
            )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_edge(
        self,
        period: FiscalPeriod,
        source: PeriodStatus,
        target: PeriodStatus,
    ) -> None:
        if source == PeriodStatus.ARCHIVED:
            self._reject(period, source, target, "period_archived")
            raise PeriodArchivedError(period.period_code, f"move period to {target.value}")
        if not is_allowed_transition(source, target):
            self._reject(period, source, target, "invalid_edge")
            raise InvalidTransitionError(period.period_code, source.value, target.value)

    def _check_archive_authority(self, actor_id: UUID, target: PeriodStatus) -> None:
        if not self._archive_requires_admin:
            return
        role = self._role_resolver.resolve(actor_id)
        if not role.has_authority(CloseRole.ADMIN):
            logger.warning(
                "transition_authority_denied",
                extra={"actor_id": str(actor_id), "role": role.value, "to_status": target.value},
            )
            raise TransitionAuthorityError(
                str(actor_id), CloseRole.ADMIN.value, role.value, target.value
            )

    def _check_children_ready(
        self,
        period: FiscalPeriod,
        source: PeriodStatus,
        target: PeriodStatus,
    ) -> None:
        status = self._periods.child_periods_status(period.id)
        if not status.can_aggregate:
            self._reject(period, source, target, "children_not_ready")
            raise ChildrenNotReadyError(
                period.period_code,
                status.closed_count,
                status.total_count,
                list(status.blocking_children),
            )

    def _reject(
        self,
        period: FiscalPeriod,
        source: PeriodStatus,
        target: PeriodStatus,
        reason: str,
    ) -> None:
        logger.warning(
            "period_transition_rejected",
            extra={
                "from_status": source.value,
                "to_status": target.value,
                "reason": reason,
            },
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _apply(
        self,
        period: FiscalPeriod,
        source: PeriodStatus,
        target: PeriodStatus,
        actor_id: UUID,
        forced: bool,
        force_reason: str | None,
        report: IncompleteItemsReport | None,
        notes: str | None,
        warnings: tuple[str, ...],
    ) -> TransitionOutcome:
        now = self._clock.now()
        action = action_for_transition(source, target, forced=forced)

        period.status = target.value
        period.updated_by_id = actor_id
        if target == PeriodStatus.CLOSED:
            period.closed_at = now
            period.closed_by_id = actor_id
            if notes:
                period.close_notes = notes
        if forced:
            period.force_closed = True
            period.force_close_reason = force_reason
            period.force_closed_by_id = actor_id
            period.force_closed_at = now
            period.incomplete_items = report.to_dict()

        details: dict = {"forced": forced}
        if forced:
            details["force_reason"] = force_reason
            details["incomplete_counts"] = report.to_dict()["counts"]
        if notes:
            details["notes"] = notes
        if warnings:
            details["warnings"] = list(warnings)

        try:
            self.session.flush()
            log = self._close_log.record(
                period.id,
                action,
                actor_id,
                from_status=source,
                to_status=target,
                details=details,
            )
        except StaleDataError as exc:
            logger.warning(
                "period_concurrent_modification",
                extra={"from_status": source.value, "to_status": target.value},
            )
            raise ConcurrentModificationError("FiscalPeriod", str(period.id)) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "period_transition_persistence_failed",
                extra={
                    "from_status": source.value,
                    "to_status": target.value,
                    "error": str(exc),
                },
            )
            raise PersistenceError("transition period", str(exc)) from exc

        if forced:
            logger.warning(
                "period_force_closed",
                extra={
                    "actor_id": str(actor_id),
                    "force_reason": force_reason,
                    "incomplete_counts": details["incomplete_counts"],
                },
            )
        logger.info(
            "period_transitioned",
            extra={
                "from_status": source.value,
                "to_status": target.value,
                "action": action.value,
                "actor_id": str(actor_id),
                "log_sequence": log.sequence,
            },
        )

        return TransitionOutcome(
            period=FiscalPeriodInfo.from_model(period),
            from_status=source,
            to_status=target,
            action=action,
            log_id=log.id,
            forced=forced,
            incomplete_items=report,
            warnings=warnings,
        )
