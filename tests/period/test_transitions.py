"""
Tests for period status transitions.

Covers:
- Lifecycle edges and rejection of everything else
- Archived periods accept nothing
- Leaf close blocked by incomplete items; status untouched on refusal
- Forced leaf close: reason required, report persisted and copied to snapshots
- Non-leaf close waits for every child; force is ignored with a warning
- Archive authority
- One close log row per transition
- Version conflicts surface as ConcurrentModificationError
"""

from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import text

from okr_kernel.domain.dtos import IncompleteItemsReport
from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus
from okr_kernel.exceptions import (
    ChildrenNotReadyError,
    ConcurrentModificationError,
    InvalidTransitionError,
    MissingForceReasonError,
    PeriodArchivedError,
    PeriodBlockedError,
    TransitionAuthorityError,
)
from okr_kernel.services.transition_service import CloseRole, TransitionService
from okr_services.period_lifecycle import PeriodLifecycleService


class _FixedRole:
    def __init__(self, role: CloseRole):
        self.role = role

    def resolve(self, actor_id):
        return self.role


class TestEdges:

    def test_activate(self, lifecycle, periods, test_actor_id):
        outcome = lifecycle.transition(periods["2025-Q1"], PeriodStatus.ACTIVE, test_actor_id)

        assert outcome.transition.from_status == PeriodStatus.UPCOMING
        assert outcome.transition.to_status == PeriodStatus.ACTIVE
        assert outcome.transition.action == CloseLogAction.PERIOD_ACTIVATED
        assert outcome.snapshot is None

    def test_string_status_accepted(self, lifecycle, periods, test_actor_id):
        outcome = lifecycle.transition(periods["2025-Q1"], "active", test_actor_id)

        assert outcome.transition.period.status == PeriodStatus.ACTIVE

    @pytest.mark.parametrize("target", [PeriodStatus.CLOSING, PeriodStatus.CLOSED, PeriodStatus.ARCHIVED])
    def test_upcoming_cannot_skip_ahead(self, lifecycle, periods, test_actor_id, target):
        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(periods["2025-Q1"], target, test_actor_id)

    def test_active_cannot_close_directly(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active")

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)

    def test_closed_cannot_reopen(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed")

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.ACTIVE, test_actor_id)

    def test_cancel_closing_returns_to_active(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing")

        outcome = lifecycle.transition(periods["2025-Q1"], PeriodStatus.ACTIVE, test_actor_id)

        assert outcome.transition.action == CloseLogAction.REOPEN
        assert lifecycle.periods.get(periods["2025-Q1"]).status == PeriodStatus.ACTIVE

    def test_rejection_is_logged(self, lifecycle, periods, test_actor_id, captured_logs):
        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)

        rejected = [r for r in captured_logs() if r["message"] == "period_transition_rejected"]
        assert rejected[0]["reason"] == "invalid_edge"
        assert rejected[0]["period_code"] == "2025-Q1"


class TestArchived:

    def test_archived_accepts_nothing(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed", "archived")

        for target in PeriodStatus:
            with pytest.raises(PeriodArchivedError):
                lifecycle.transition(periods["2025-Q1"], target, test_actor_id)


class TestLeafClose:

    def test_clean_close(self, lifecycle, periods, advance, complete_org, test_actor_id, clock):
        complete_org()
        advance(periods["2025-Q1"], "active", "closing")

        outcome = lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id, notes="Done")

        period = outcome.transition.period
        assert outcome.transition.action == CloseLogAction.CLOSE_COMPLETED
        assert outcome.transition.forced is False
        assert period.status == PeriodStatus.CLOSED
        assert period.closed_at == clock.now()
        assert period.closed_by_id == test_actor_id
        assert period.close_notes == "Done"
        assert period.force_closed is False
        assert period.incomplete_items is None

    def test_blocked_by_incomplete_items(self, lifecycle, periods, advance, create_org, create_objective, test_actor_id):
        create_objective(create_org())
        advance(periods["2025-Q1"], "active", "closing")

        with pytest.raises(PeriodBlockedError) as exc_info:
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)

        assert exc_info.value.report.unapproved_sets[0].status == "missing"
        assert lifecycle.periods.get(periods["2025-Q1"]).status == PeriodStatus.CLOSING
        assert len(lifecycle.history.close_logs(periods["2025-Q1"])) == 2
        assert lifecycle.history.snapshot_count(periods["2025-Q1"]) == 0

    def test_blocked_close_is_logged(self, lifecycle, periods, advance, create_org, create_objective, test_actor_id, captured_logs):
        create_objective(create_org())
        advance(periods["2025-Q1"], "active", "closing")

        with pytest.raises(PeriodBlockedError):
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)

        blocked = [r for r in captured_logs() if r["message"] == "period_close_blocked"]
        assert len(blocked) == 1
        assert blocked[0]["unapproved_sets"] == 1


class TestForcedClose:

    @pytest.fixture
    def blocked_q1(self, periods, advance, create_org, create_objective, create_key_result):
        org = create_org(name="Marketing")
        create_key_result(create_objective(org), current="0")
        advance(periods["2025-Q1"], "active", "closing")
        return periods["2025-Q1"]

    def test_force_requires_reason(self, lifecycle, blocked_q1, test_actor_id):
        with pytest.raises(MissingForceReasonError):
            lifecycle.transition(blocked_q1, PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="   ")

        assert lifecycle.periods.get(blocked_q1).status == PeriodStatus.CLOSING

    def test_force_without_flag_still_blocked(self, lifecycle, blocked_q1, test_actor_id):
        with pytest.raises(PeriodBlockedError):
            lifecycle.transition(blocked_q1, PeriodStatus.CLOSED, test_actor_id, force_reason="Quarter over")

    def test_forced_close_persists_report(self, lifecycle, blocked_q1, test_actor_id, clock):
        outcome = lifecycle.transition(
            blocked_q1, PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Quarter over"
        )

        period = outcome.transition.period
        report = outcome.transition.incomplete_items
        assert outcome.transition.forced is True
        assert outcome.transition.action == CloseLogAction.FORCE_CLOSE
        assert period.force_closed is True
        assert period.force_close_reason == "Quarter over"
        assert period.force_closed_by_id == test_actor_id
        assert period.force_closed_at == clock.now()
        assert period.incomplete_items == report.to_dict()
        assert report.total_count == 3

    def test_forced_close_copied_to_every_snapshot(self, lifecycle, blocked_q1, complete_org, test_actor_id):
        complete_org(name="Sales")

        outcome = lifecycle.transition(
            blocked_q1, PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Quarter over"
        )

        snapshots = lifecycle.history.list_snapshots(blocked_q1)
        assert [s.organization_name for s in snapshots] == ["Marketing", "Sales"]
        for snapshot in snapshots:
            assert snapshot.force_closed is True
            assert snapshot.force_close_reason == "Quarter over"
            assert snapshot.incomplete_items == outcome.transition.period.incomplete_items

    def test_force_close_log_details(self, lifecycle, blocked_q1, test_actor_id):
        outcome = lifecycle.transition(
            blocked_q1, PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Quarter over"
        )

        logs = lifecycle.history.close_logs(blocked_q1)
        entry = next(log for log in logs if log.id == outcome.transition.log_id)
        assert entry.action == CloseLogAction.FORCE_CLOSE
        assert entry.details["force_reason"] == "Quarter over"
        assert entry.details["incomplete_counts"]["total"] == 3

    def test_force_on_clean_leaf_is_plain_close(self, lifecycle, periods, advance, complete_org, test_actor_id):
        complete_org()
        advance(periods["2025-Q1"], "active", "closing")

        outcome = lifecycle.transition(
            periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Just in case"
        )

        assert outcome.transition.forced is False
        assert outcome.transition.period.force_close_reason is None


class TestNonLeafClose:

    def test_children_not_ready(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed")
        advance(periods["2025-Q2"], "active")
        advance(periods["2025-H1"], "active", "closing")

        with pytest.raises(ChildrenNotReadyError) as exc_info:
            lifecycle.transition(periods["2025-H1"], PeriodStatus.CLOSED, test_actor_id)

        assert exc_info.value.closed_count == 1
        assert exc_info.value.total_count == 2
        assert exc_info.value.blocking_children == [("2025-Q2", "active")]
        assert lifecycle.periods.get(periods["2025-H1"]).status == PeriodStatus.CLOSING

    def test_force_does_not_bypass_children(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-H1"], "active", "closing")

        with pytest.raises(ChildrenNotReadyError):
            lifecycle.transition(
                periods["2025-H1"], PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Year end"
            )

    def test_half_closes_and_rolls_up(self, lifecycle, periods, advance, complete_org, test_actor_id):
        org = complete_org(current="80")
        complete_org(org=org, period_code="2025-Q2", current="60")
        advance(periods["2025-Q1"], "active", "closing", "closed")
        advance(periods["2025-Q2"], "active", "closing", "closed")
        advance(periods["2025-H1"], "active", "closing")

        outcome = lifecycle.transition(periods["2025-H1"], PeriodStatus.CLOSED, test_actor_id)

        assert outcome.snapshot.capture_kind == "rollup"
        q1 = lifecycle.history.get_company_summary(periods["2025-Q1"])
        q2 = lifecycle.history.get_company_summary(periods["2025-Q2"])
        h1 = lifecycle.history.get_company_summary(periods["2025-H1"])
        assert h1.total_objectives == q1.total_objectives + q2.total_objectives == 2
        assert h1.company_avg_achievement == Decimal("70.00")

    def test_force_ignored_with_warning(self, lifecycle, periods, advance, test_actor_id, captured_logs):
        advance(periods["2025-Q1"], "active", "closing", "closed")
        advance(periods["2025-Q2"], "active", "closing", "closed")
        advance(periods["2025-H1"], "active", "closing")

        outcome = lifecycle.transition(
            periods["2025-H1"], PeriodStatus.CLOSED, test_actor_id, force=True, force_reason="Year end"
        )

        assert outcome.transition.forced is False
        assert outcome.transition.action == CloseLogAction.CLOSE_COMPLETED
        assert outcome.transition.warnings == ("force_ignored_for_non_leaf_period",)
        assert outcome.transition.period.force_closed is False
        assert any(r["message"] == "force_ignored_for_non_leaf_period" for r in captured_logs())

    def test_archived_children_count_as_closed(self, lifecycle, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed", "archived")
        advance(periods["2025-Q2"], "active", "closing", "closed")
        advance(periods["2025-H1"], "active", "closing")

        outcome = lifecycle.transition(periods["2025-H1"], PeriodStatus.CLOSED, test_actor_id)

        assert outcome.transition.period.status == PeriodStatus.CLOSED


class TestArchiveAuthority:

    def test_manager_cannot_archive(self, session, policy, clock, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed")
        managed = PeriodLifecycleService(session, policy, clock=clock, role_resolver=_FixedRole(CloseRole.MANAGER))

        with pytest.raises(TransitionAuthorityError):
            managed.transition(periods["2025-Q1"], PeriodStatus.ARCHIVED, test_actor_id)

        assert managed.periods.get(periods["2025-Q1"]).status == PeriodStatus.CLOSED

    def test_manager_can_close(self, session, policy, clock, periods, test_actor_id):
        managed = PeriodLifecycleService(session, policy, clock=clock, role_resolver=_FixedRole(CloseRole.MANAGER))

        for status in ("active", "closing", "closed"):
            managed.transition(periods["2025-Q1"], status, test_actor_id)

        assert managed.periods.get(periods["2025-Q1"]).status == PeriodStatus.CLOSED

    def test_policy_can_lift_requirement(self, session, policy, clock, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing", "closed")
        relaxed = PeriodLifecycleService(
            session,
            replace(policy, archive_requires_admin=False),
            clock=clock,
            role_resolver=_FixedRole(CloseRole.MEMBER),
        )

        outcome = relaxed.transition(periods["2025-Q1"], PeriodStatus.ARCHIVED, test_actor_id)

        assert outcome.transition.action == CloseLogAction.ARCHIVE_MOVED


class TestCloseLog:

    def test_one_row_per_transition(self, lifecycle, periods, advance):
        q1 = periods["2025-Q1"]
        advance(q1, "active", "closing", "active", "closing", "closed", "archived")

        logs = lifecycle.history.close_logs(q1)

        assert [log.action for log in logs] == [
            CloseLogAction.PERIOD_ACTIVATED,
            CloseLogAction.CLOSE_INITIATED,
            CloseLogAction.REOPEN,
            CloseLogAction.CLOSE_INITIATED,
            CloseLogAction.CLOSE_COMPLETED,
            CloseLogAction.SNAPSHOT_CREATED,
            CloseLogAction.ARCHIVE_MOVED,
        ]
        assert [log.sequence for log in logs] == list(range(1, 8))

    def test_outcome_names_its_log_row(self, lifecycle, periods, test_actor_id):
        outcome = lifecycle.transition(periods["2025-Q1"], PeriodStatus.ACTIVE, test_actor_id)

        (entry,) = lifecycle.history.close_logs(periods["2025-Q1"])
        assert entry.id == outcome.transition.log_id
        assert entry.from_status == PeriodStatus.UPCOMING
        assert entry.to_status == PeriodStatus.ACTIVE
        assert entry.actor_id == test_actor_id

    def test_failed_transition_writes_no_row(self, lifecycle, periods, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)

        assert lifecycle.history.close_logs(periods["2025-Q1"]) == []


class _ConcurrentWriter:
    """Detector stand-in that bumps the period's version behind the ORM's back."""

    def __init__(self, session, clock):
        self.session = session
        self.clock = clock

    def detect(self, period_id):
        self.session.execute(
            text("UPDATE fiscal_periods SET version = version + 1 WHERE id = :id"),
            {"id": str(period_id)},
        )
        return IncompleteItemsReport(period_id=period_id, period_code="2025-Q1", generated_at=self.clock.now())


class TestConcurrency:

    def test_version_conflict(self, session, clock, periods, advance, test_actor_id):
        advance(periods["2025-Q1"], "active", "closing")
        transitions = TransitionService(session, detector=_ConcurrentWriter(session, clock), clock=clock)

        with pytest.raises(ConcurrentModificationError):
            transitions.transition(periods["2025-Q1"], PeriodStatus.CLOSED, test_actor_id)
