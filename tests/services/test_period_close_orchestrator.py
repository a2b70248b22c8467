"""
Tests for PeriodCloseOrchestrator.

Covers:
- Health check for leaf and non-leaf periods
- begin() moves an active period to closing and resumes a closing one
- Clean close: review -> confirm -> execute
- Forced close needs a reason and an explicit acknowledgement
- Out-of-order steps raise CloseSequenceError
- Non-leaf periods wait for their children
- cancel_closing() returns the period to active
- Every step logs with the run's correlation id
"""

from uuid import uuid4

import pytest

from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus
from okr_kernel.exceptions import (
    ChildrenNotReadyError,
    CloseSequenceError,
    InvalidTransitionError,
    MissingForceReasonError,
    PeriodNotFoundError,
    PeriodBlockedError,
)
from okr_services._close_types import WizardStep
from okr_services.period_close_orchestrator import PeriodCloseOrchestrator

# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def orchestrator(lifecycle) -> PeriodCloseOrchestrator:
    return PeriodCloseOrchestrator(lifecycle)


@pytest.fixture
def q1(periods, advance):
    advance(periods["2025-Q1"], "active")
    return periods["2025-Q1"]


@pytest.fixture
def blocked(create_org, create_objective):
    """An organization with objectives but no goal set."""
    return create_objective(create_org(name="Marketing"))


# =========================================================================
# Health
# =========================================================================


class TestHealthCheck:

    def test_clean_leaf(self, orchestrator, q1, complete_org):
        complete_org()

        health = orchestrator.health_check(q1)

        assert health.is_leaf
        assert health.blocking_count == 0
        assert health.can_close_cleanly
        assert not health.can_force

    def test_blocked_leaf(self, orchestrator, q1, blocked):
        health = orchestrator.health_check(q1)

        assert health.blocking_count == 1
        assert not health.can_close_cleanly
        assert health.can_force

    def test_non_leaf_skips_detection(self, orchestrator, periods, blocked):
        health = orchestrator.health_check(periods["2025-H1"])

        assert not health.is_leaf
        assert health.incomplete_items is None
        assert not health.children_ready
        assert not health.can_force


# =========================================================================
# Steps
# =========================================================================


class TestBegin:

    def test_active_period_moves_to_closing(self, orchestrator, lifecycle, q1, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        assert state.step == WizardStep.REVIEW
        assert state.period_code == "2025-Q1"
        assert state.started_by == test_actor_id
        assert lifecycle.periods.get(q1).status == PeriodStatus.CLOSING

    def test_closing_period_is_resumed(self, orchestrator, lifecycle, q1, advance, test_actor_id):
        advance(q1, "closing")

        orchestrator.begin(q1, test_actor_id)

        actions = [log.action for log in lifecycle.history.close_logs(q1)]
        assert actions.count(CloseLogAction.CLOSE_INITIATED) == 1

    def test_upcoming_period_rejected(self, orchestrator, periods, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            orchestrator.begin(periods["2025-Q2"], test_actor_id)

    def test_blocked_period_lands_on_incomplete(self, orchestrator, q1, blocked, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        assert state.step == WizardStep.INCOMPLETE
        assert state.health.incomplete_items.unapproved_sets[0].org_name == "Marketing"


class TestCleanClose:

    def test_full_run(self, orchestrator, lifecycle, q1, complete_org, test_actor_id):
        complete_org()

        state = orchestrator.begin(q1, test_actor_id)
        state = orchestrator.proceed_to_confirm(state)
        state = orchestrator.confirm(state, notes="All done")
        result = orchestrator.execute(state, test_actor_id)

        assert result.state.step == WizardStep.COMPLETE
        assert result.transition.to_status == PeriodStatus.CLOSED
        assert result.transition.period.close_notes == "All done"
        assert result.snapshot.snapshot_count == 1
        assert result.message == "2025-Q1 closed"
        assert lifecycle.periods.get(q1).status == PeriodStatus.CLOSED

    def test_execute_before_confirm(self, orchestrator, q1, complete_org, test_actor_id):
        complete_org()
        state = orchestrator.proceed_to_confirm(orchestrator.begin(q1, test_actor_id))

        with pytest.raises(CloseSequenceError):
            orchestrator.execute(state, test_actor_id)

    def test_confirm_before_review_done(self, orchestrator, q1, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        with pytest.raises(CloseSequenceError):
            orchestrator.confirm(state)

    def test_completed_run_cannot_restart(self, orchestrator, q1, test_actor_id):
        state = orchestrator.confirm(orchestrator.proceed_to_confirm(orchestrator.begin(q1, test_actor_id)))
        result = orchestrator.execute(state, test_actor_id)

        with pytest.raises(CloseSequenceError):
            orchestrator.review(result.state)
        with pytest.raises(CloseSequenceError):
            orchestrator.cancel_closing(result.state, test_actor_id)

    def test_steps_share_correlation_id(self, orchestrator, q1, test_actor_id, captured_logs):
        state = orchestrator.begin(q1, test_actor_id)
        state = orchestrator.confirm(orchestrator.proceed_to_confirm(state))
        orchestrator.execute(state, test_actor_id)

        logs = captured_logs()
        steps = [r for r in logs if r["message"] in ("close_begun", "close_reviewed", "close_completed")]
        assert {r["correlation_id"] for r in steps} == {state.correlation_id}
        transitioned = [r for r in logs if r["message"] == "period_transitioned" and r["to_status"] == "closed"]
        assert transitioned[0]["correlation_id"] == state.correlation_id


class TestForcedClose:

    def test_blocked_without_force(self, orchestrator, q1, blocked, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        with pytest.raises(PeriodBlockedError):
            orchestrator.proceed_to_confirm(state)

    def test_force_needs_reason(self, orchestrator, q1, blocked, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        with pytest.raises(MissingForceReasonError):
            orchestrator.proceed_to_confirm(state, force=True, force_reason="")

    def test_force_needs_acknowledgement(self, orchestrator, q1, blocked, test_actor_id):
        state = orchestrator.proceed_to_confirm(
            orchestrator.begin(q1, test_actor_id), force=True, force_reason="Quarter over"
        )

        with pytest.raises(CloseSequenceError):
            orchestrator.confirm(state)

    def test_forced_run(self, orchestrator, lifecycle, q1, blocked, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)
        state = orchestrator.proceed_to_confirm(state, force=True, force_reason="Quarter over")
        state = orchestrator.confirm(state, acknowledge_force=True)
        result = orchestrator.execute(state, test_actor_id)

        assert state.acknowledged
        assert result.transition.forced
        assert result.transition.action == CloseLogAction.FORCE_CLOSE
        assert result.message == "2025-Q1 closed with incomplete items"
        period = lifecycle.periods.get(q1)
        assert period.force_closed
        assert period.force_close_reason == "Quarter over"

    def test_force_on_clean_period_is_dropped(self, orchestrator, q1, complete_org, test_actor_id):
        complete_org()

        state = orchestrator.proceed_to_confirm(
            orchestrator.begin(q1, test_actor_id), force=True, force_reason="Habit"
        )

        assert state.force is False
        assert state.force_reason is None

    def test_new_gaps_after_review_block_execute(self, orchestrator, q1, complete_org, create_org, create_objective, test_actor_id):
        complete_org()
        state = orchestrator.confirm(orchestrator.proceed_to_confirm(orchestrator.begin(q1, test_actor_id)))
        create_objective(create_org(name="Latecomer"))

        with pytest.raises(PeriodBlockedError):
            orchestrator.execute(state, test_actor_id)


class TestNonLeaf:

    def test_children_must_be_closed(self, orchestrator, periods, advance, test_actor_id):
        advance(periods["2025-H1"], "active")
        state = orchestrator.begin(periods["2025-H1"], test_actor_id)

        assert state.step == WizardStep.INCOMPLETE
        with pytest.raises(ChildrenNotReadyError):
            orchestrator.proceed_to_confirm(state, force=True, force_reason="Half over")

    def test_closes_after_children(self, orchestrator, periods, advance, test_actor_id):
        for code in ("2025-Q1", "2025-Q2"):
            advance(periods[code], "active", "closing", "closed")
        advance(periods["2025-H1"], "active")

        state = orchestrator.begin(periods["2025-H1"], test_actor_id)
        state = orchestrator.confirm(orchestrator.proceed_to_confirm(state))
        result = orchestrator.execute(state, test_actor_id)

        assert result.snapshot.capture_kind == "rollup"


class TestCancel:

    def test_cancel_returns_to_active(self, orchestrator, lifecycle, q1, blocked, test_actor_id):
        state = orchestrator.begin(q1, test_actor_id)

        cancelled = orchestrator.cancel_closing(state, test_actor_id)

        assert cancelled.step == WizardStep.CANCELLED
        assert lifecycle.periods.get(q1).status == PeriodStatus.ACTIVE
        assert lifecycle.history.close_logs(q1)[-1].action == CloseLogAction.REOPEN

    def test_cancel_twice(self, orchestrator, q1, test_actor_id):
        cancelled = orchestrator.cancel_closing(orchestrator.begin(q1, test_actor_id), test_actor_id)

        with pytest.raises(CloseSequenceError):
            orchestrator.cancel_closing(cancelled, test_actor_id)

    def test_cancelled_run_cannot_execute(self, orchestrator, q1, test_actor_id):
        state = orchestrator.confirm(orchestrator.proceed_to_confirm(orchestrator.begin(q1, test_actor_id)))
        cancelled = orchestrator.cancel_closing(state, test_actor_id)

        with pytest.raises(CloseSequenceError):
            orchestrator.execute(cancelled, test_actor_id)

    def test_unknown_period(self, orchestrator, fiscal_year, test_actor_id):
        with pytest.raises(PeriodNotFoundError):
            orchestrator.begin(uuid4(), test_actor_id)
