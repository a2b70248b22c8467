"""
okr_services.period_close_orchestrator -- Guided period close.

Responsibility:
    Sequence the operator-facing close of one period:
    review -> incomplete -> confirm -> processing -> complete.
    All business rules live in TransitionService, the incompleteness
    detector and the snapshot service; the orchestrator adds step order,
    the force acknowledgement and evidence for the operator.

Architecture position:
    Services -- stateful orchestration over PeriodLifecycleService.
    Consumes DTOs from _close_types.py.  Holds no state between calls: the
    caller keeps the CloseWizardState and hands it back.

Invariants enforced:
    - execute() before confirm() raises CloseSequenceError.
    - Forcing needs a non-blank reason at proceed_to_confirm() and an
      explicit acknowledgement at confirm().
    - cancel_closing() goes through the closing -> active edge of
      TransitionService; status is never written here.
    - The close is re-gated by TransitionService at execute(), so data
      that changed since review() cannot slip through.

Failure modes:
    - InvalidTransitionError if begin() is called on a period that is
      neither active nor closing.
    - PeriodBlockedError / ChildrenNotReadyError / MissingForceReasonError
      at proceed_to_confirm() when the review forbids going on.
    - CloseSequenceError for any step out of order.

Audit relevance:
    Every step logs with the run's correlation_id.  The transitions it
    triggers write their own close log rows.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID, uuid4

from okr_kernel.domain.lifecycle import PeriodStatus
from okr_kernel.exceptions import (
    ChildrenNotReadyError,
    CloseSequenceError,
    InvalidTransitionError,
    MissingForceReasonError,
    PeriodBlockedError,
)
from okr_kernel.logging_config import LogContext, get_logger
from okr_services._close_types import (
    CloseHealth,
    CloseWizardResult,
    CloseWizardState,
    WizardStep,
)
from okr_services.period_lifecycle import PeriodLifecycleService

logger = get_logger("services.period_close")


_OPEN_STEPS = frozenset({WizardStep.REVIEW, WizardStep.INCOMPLETE})


class PeriodCloseOrchestrator:
    """
    Drives one period through the guided close.

    Contract:
        Each method takes the current CloseWizardState and returns the next
        one (or a CloseWizardResult from execute()).  Flush-only like the
        lifecycle it wraps; the caller owns the transaction.
    """

    def __init__(self, lifecycle: PeriodLifecycleService):
        self._lifecycle = lifecycle
        self._clock = lifecycle.clock
        self._periods = lifecycle.periods

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self, period_id: UUID) -> CloseHealth:
        """Read-only diagnostic: child readiness and incomplete items."""
        period = self._periods.get(period_id)
        children = self._periods.child_periods_status(period_id)
        report = None
        if children.is_leaf:
            report = self._lifecycle.get_incomplete_items(period_id)
        return CloseHealth(
            period_id=period.id,
            period_code=period.period_code,
            status=period.status.value,
            is_leaf=children.is_leaf,
            children=children,
            checked_at=self._clock.now(),
            incomplete_items=report,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def begin(self, period_id: UUID, actor_id: UUID) -> CloseWizardState:
        """
        Open a close run.  An active period is moved to closing first; a
        period already closing is resumed.
        """
        period = self._periods.get(period_id)
        if period.status == PeriodStatus.ACTIVE:
            self._lifecycle.transition(period_id, PeriodStatus.CLOSING, actor_id)
        elif period.status != PeriodStatus.CLOSING:
            raise InvalidTransitionError(
                period.period_code, period.status.value, PeriodStatus.CLOSING.value
            )

        state = CloseWizardState(
            run_id=uuid4(),
            correlation_id=str(uuid4()),
            period_id=period.id,
            period_code=period.period_code,
            step=WizardStep.REVIEW,
            started_by=actor_id,
            started_at=self._clock.now(),
        )
        logger.info(
            "close_begun",
            extra={
                "run_id": str(state.run_id),
                "correlation_id": state.correlation_id,
                "period_code": state.period_code,
                "actor_id": str(actor_id),
                "resumed": period.status == PeriodStatus.CLOSING,
            },
        )
        return self.review(state)

    def review(self, state: CloseWizardState) -> CloseWizardState:
        """Recompute health.  Moves to ``incomplete`` when anything blocks."""
        self._require_step(state, _OPEN_STEPS, "review")
        health = self.health_check(state.period_id)
        step = WizardStep.REVIEW if health.can_close_cleanly else WizardStep.INCOMPLETE

        logger.info(
            "close_reviewed",
            extra={
                "correlation_id": state.correlation_id,
                "period_code": state.period_code,
                "is_leaf": health.is_leaf,
                "blocking_count": health.blocking_count,
                "children_ready": health.children_ready,
                "step": step.value,
            },
        )
        return replace(state, step=step, health=health, confirmed=False, acknowledged=False)

    def proceed_to_confirm(
        self,
        state: CloseWizardState,
        force: bool = False,
        force_reason: str | None = None,
    ) -> CloseWizardState:
        """
        Leave review for the confirm step.

        A clean period goes straight on.  A leaf with incomplete items goes
        on only with ``force`` and a non-blank reason.  A non-leaf whose
        children are not closed cannot go on at all.
        """
        self._require_step(state, _OPEN_STEPS, "proceed to confirm")
        health = state.health
        if health is None:
            raise CloseSequenceError(state.period_code, state.step.value, "proceed to confirm")

        if force and not (force_reason and force_reason.strip()):
            raise MissingForceReasonError(state.period_code)

        if not health.children_ready:
            raise ChildrenNotReadyError(
                state.period_code,
                health.children.closed_count,
                health.children.total_count,
                list(health.children.blocking_children),
            )

        forcing = force and health.can_force
        if health.blocking_count > 0 and not forcing:
            raise PeriodBlockedError(state.period_code, health.incomplete_items)

        logger.info(
            "close_confirm_requested",
            extra={
                "correlation_id": state.correlation_id,
                "period_code": state.period_code,
                "force": forcing,
            },
        )
        return replace(
            state,
            step=WizardStep.CONFIRM,
            force=forcing,
            force_reason=force_reason if forcing else None,
        )

    def confirm(
        self,
        state: CloseWizardState,
        acknowledge_force: bool = False,
        notes: str | None = None,
    ) -> CloseWizardState:
        """Operator sign-off.  A forced close must be acknowledged."""
        self._require_step(state, {WizardStep.CONFIRM}, "confirm")
        if state.force and not acknowledge_force:
            raise CloseSequenceError(
                state.period_code, state.step.value, "confirm a forced close without acknowledgement"
            )
        return replace(
            state,
            confirmed=True,
            acknowledged=state.force and acknowledge_force,
            notes=notes,
        )

    def execute(self, state: CloseWizardState, actor_id: UUID) -> CloseWizardResult:
        """
        Close the period (and snapshot it, per policy).

        Raises:
            CloseSequenceError: If the run has not been confirmed.
            Whatever TransitionService raises if the period no longer
            passes its gates.
        """
        if state.step != WizardStep.CONFIRM or not state.confirmed:
            raise CloseSequenceError(state.period_code, state.step.value, "execute")

        processing = replace(state, step=WizardStep.PROCESSING)
        with LogContext.bind(correlation_id=state.correlation_id, actor_id=actor_id):
            outcome = self._lifecycle.transition(
                state.period_id,
                PeriodStatus.CLOSED,
                actor_id,
                force=processing.force,
                force_reason=processing.force_reason,
                notes=processing.notes,
            )

        completed_at = self._clock.now()
        done = replace(processing, step=WizardStep.COMPLETE)
        message = f"{state.period_code} closed"
        if outcome.transition.forced:
            message += " with incomplete items"

        logger.info(
            "close_completed",
            extra={
                "correlation_id": state.correlation_id,
                "period_code": state.period_code,
                "forced": outcome.transition.forced,
                "snapshot_count": outcome.snapshot.snapshot_count if outcome.snapshot else 0,
            },
        )
        return CloseWizardResult(
            state=done,
            transition=outcome.transition,
            completed_at=completed_at,
            snapshot=outcome.snapshot,
            message=message,
        )

    def cancel_closing(self, state: CloseWizardState, actor_id: UUID) -> CloseWizardState:
        """Abort the run and return the period to active."""
        if state.step in (WizardStep.PROCESSING, WizardStep.COMPLETE, WizardStep.CANCELLED):
            raise CloseSequenceError(state.period_code, state.step.value, "cancel")

        self._lifecycle.transition(state.period_id, PeriodStatus.ACTIVE, actor_id)
        logger.info(
            "close_cancelled",
            extra={
                "correlation_id": state.correlation_id,
                "period_code": state.period_code,
                "actor_id": str(actor_id),
                "cancelled_at_step": state.step.value,
            },
        )
        return replace(state, step=WizardStep.CANCELLED)

    # ------------------------------------------------------------------

    @staticmethod
    def _require_step(state: CloseWizardState, allowed, requested: str) -> None:
        if state.step not in allowed:
            raise CloseSequenceError(state.period_code, state.step.value, requested)
