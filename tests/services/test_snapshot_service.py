"""
Tests for period snapshots and company summaries.

Covers:
- Only closed periods are snapshotted, once
- Leaf capture from live data, including organizations without objectives
- Stored records decode to typed records
- Rollup from child snapshots, never from live data
- Forced-closure provenance and degraded sources
- Company summary and the snapshot_created log row
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus
from okr_kernel.domain.snapshot_records import CheckInRecord, KeyResultRecord, ObjectiveRecord
from okr_kernel.exceptions import (
    ChildSnapshotsMissingError,
    SnapshotAlreadyExistsError,
    SnapshotNotAllowedError,
)
from okr_kernel.selectors.snapshot_selector import SnapshotSelector
from okr_services.period_lifecycle import PeriodLifecycleService


@pytest.fixture
def manual(session, policy, clock) -> PeriodLifecycleService:
    """Lifecycle that does not snapshot on close."""
    return PeriodLifecycleService(session, replace(policy, snapshot_on_close=False), clock=clock)


@pytest.fixture
def close(manual, test_actor_id):
    def _close(period_id, **kwargs):
        for status in ("active", "closing"):
            manual.transition(period_id, status, test_actor_id)
        return manual.transition(period_id, PeriodStatus.CLOSED, test_actor_id, **kwargs)

    return _close


class TestPreconditions:

    def test_open_period_rejected(self, manual, periods, test_actor_id):
        manual.transition(periods["2025-Q1"], "active", test_actor_id)

        with pytest.raises(SnapshotNotAllowedError):
            manual.create_snapshot(periods["2025-Q1"], test_actor_id)

    def test_second_snapshot_rejected(self, lifecycle, periods, advance, complete_org, test_actor_id):
        complete_org()
        outcome = advance(periods["2025-Q1"], "active", "closing", "closed")
        assert outcome.snapshot is not None

        with pytest.raises(SnapshotAlreadyExistsError):
            lifecycle.create_snapshot(periods["2025-Q1"], test_actor_id)

        assert lifecycle.history.snapshot_count(periods["2025-Q1"]) == 1

    def test_unique_constraint_catches_concurrent_capture(
        self, lifecycle, periods, advance, complete_org, test_actor_id, monkeypatch, captured_logs
    ):
        complete_org()
        advance(periods["2025-Q1"], "active", "closing", "closed")
        # another writer committed between the existence check and the insert
        monkeypatch.setattr(SnapshotSelector, "snapshot_count", lambda self, period_id: 0)
        monkeypatch.setattr(SnapshotSelector, "summary_model", lambda self, period_id: None)

        with pytest.raises(SnapshotAlreadyExistsError) as exc_info:
            lifecycle.create_snapshot(periods["2025-Q1"], test_actor_id)

        assert exc_info.value.period_code == "2025-Q1"
        assert "concurrent_snapshot_conflict" in [r["message"] for r in captured_logs()]

    def test_no_snapshot_without_policy(self, manual, periods, close):
        outcome = close(periods["2025-Q1"])

        assert outcome.snapshot is None
        assert manual.history.snapshot_count(periods["2025-Q1"]) == 0


class TestLeafCapture:

    def test_every_active_org_captured(self, manual, periods, close, complete_org, create_org, test_actor_id):
        complete_org(name="Sales")
        create_org(name="Empty")
        create_org(name="Retired", is_active=False)
        close(periods["2025-Q1"])

        result = manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        snapshots = manual.history.list_snapshots(periods["2025-Q1"])
        assert result.capture_kind == "capture"
        assert result.snapshot_count == 2
        assert [s.organization_name for s in snapshots] == ["Empty", "Sales"]
        assert snapshots[0].total_objectives == 0

    def test_figures(self, manual, periods, close, complete_org, test_actor_id):
        org = complete_org(name="Sales", current="80")
        close(periods["2025-Q1"])
        manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        snapshot = manual.history.get_org_snapshot(periods["2025-Q1"], org.id)

        assert snapshot.total_objectives == 1
        assert snapshot.total_key_results == 1
        assert snapshot.total_check_ins == 1
        assert snapshot.weighted_achievement_rate == Decimal("80.00")
        assert snapshot.grade_distribution == {"S": 0, "A": 0, "B": 0, "C": 0, "D": 1}
        assert snapshot.bii_distribution["Build"] == 1
        assert snapshot.status_summary == {"active": 1}
        assert snapshot.force_closed is False
        assert snapshot.degraded_sources == ()

    def test_records_decode(self, manual, periods, close, complete_org, test_actor_id):
        org = complete_org(name="Sales")
        close(periods["2025-Q1"])
        manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        snapshot = manual.history.get_org_snapshot(periods["2025-Q1"], org.id)

        (objective,) = snapshot.objectives
        (key_result,) = snapshot.key_results
        (check_in,) = snapshot.check_ins
        assert isinstance(objective, ObjectiveRecord)
        assert objective.name == "Sales objective"
        assert isinstance(key_result, KeyResultRecord)
        assert key_result.name == "Sales KR"
        assert key_result.achievement_rate == Decimal("80.00")
        assert isinstance(check_in, CheckInRecord)
        assert check_in.value == Decimal("80")

    def test_later_edits_do_not_change_snapshot(
        self,
        manual,
        periods,
        close,
        create_org,
        create_goal_set,
        create_objective,
        create_key_result,
        create_check_in,
        test_actor_id,
    ):
        org = create_org()
        create_goal_set(org)
        objective = create_objective(org)
        create_check_in(create_key_result(objective))
        close(periods["2025-Q1"])
        manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        create_key_result(objective, name="Late KR")

        snapshot = manual.history.get_org_snapshot(periods["2025-Q1"], org.id)
        assert snapshot.total_key_results == 1
        assert [kr.name for kr in snapshot.key_results] == ["Close deals"]


class TestSummaryAndLog:

    def test_company_summary(self, manual, periods, close, complete_org, create_org, test_actor_id):
        complete_org(name="Sales", current="80")
        complete_org(name="Ops", current="100")
        create_org(name="Empty")
        close(periods["2025-Q1"])

        result = manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        summary = manual.history.get_company_summary(periods["2025-Q1"])
        assert summary.id == result.summary_id
        assert summary.total_orgs == 3
        assert summary.total_objectives == 2
        assert summary.company_avg_achievement == Decimal("90.00")
        assert [p["org_name"] for p in summary.top_performers] == ["Ops", "Sales"]
        assert [p["org_name"] for p in summary.low_performers] == ["Sales", "Ops"]

    def test_one_log_row(self, manual, periods, close, complete_org, test_actor_id):
        complete_org(name="Sales")
        complete_org(name="Ops")
        close(periods["2025-Q1"])

        result = manual.create_snapshot(periods["2025-Q1"], test_actor_id)

        created = [
            log
            for log in manual.history.close_logs(periods["2025-Q1"])
            if log.action == CloseLogAction.SNAPSHOT_CREATED
        ]
        assert len(created) == 1
        assert created[0].id == result.log_id
        assert created[0].details["snapshot_count"] == 2
        assert created[0].details["capture_kind"] == "capture"


class TestRollup:

    def test_requires_child_snapshots(self, manual, periods, close, test_actor_id):
        close(periods["2025-Q1"])
        close(periods["2025-Q2"])
        close(periods["2025-H1"])

        with pytest.raises(ChildSnapshotsMissingError) as exc_info:
            manual.create_snapshot(periods["2025-H1"], test_actor_id)

        assert exc_info.value.missing_children == ["2025-Q1", "2025-Q2"]
        assert manual.history.snapshot_count(periods["2025-H1"]) == 0

    def test_rollup_from_children(
        self,
        manual,
        periods,
        close,
        complete_org,
        create_objective,
        create_key_result,
        create_check_in,
        test_actor_id,
    ):
        org = complete_org(name="Sales", current="80")
        complete_org(org=org, period_code="2025-Q2", current="100")
        second = create_objective(org, period_code="2025-Q2", name="Second objective")
        create_check_in(create_key_result(second, current="40"), period_code="2025-Q2", value="40")
        for code in ("2025-Q1", "2025-Q2"):
            close(periods[code])
            manual.create_snapshot(periods[code], test_actor_id)
        close(periods["2025-H1"])

        result = manual.create_snapshot(periods["2025-H1"], test_actor_id)

        snapshot = manual.history.get_org_snapshot(periods["2025-H1"], org.id)
        q1 = manual.history.get_org_snapshot(periods["2025-Q1"], org.id)
        q2 = manual.history.get_org_snapshot(periods["2025-Q2"], org.id)
        assert result.capture_kind == "rollup"
        assert snapshot.capture_kind == "rollup"
        assert snapshot.total_objectives == 3
        assert snapshot.total_key_results == 3
        assert snapshot.weighted_achievement_rate == Decimal("73.33")
        assert snapshot.source_snapshot_ids == (str(q1.id), str(q2.id))
        assert len(snapshot.objectives) == 3

    def test_degraded_sources_name_forced_children(
        self, manual, periods, close, create_org, create_objective, create_key_result, test_actor_id
    ):
        create_key_result(create_objective(create_org(name="Sales")), current="0")
        close(periods["2025-Q1"], force=True, force_reason="Reorg")
        manual.create_snapshot(periods["2025-Q1"], test_actor_id)
        close(periods["2025-Q2"])
        manual.create_snapshot(periods["2025-Q2"], test_actor_id)
        close(periods["2025-H1"])

        manual.create_snapshot(periods["2025-H1"], test_actor_id)

        (snapshot,) = manual.history.list_snapshots(periods["2025-H1"])
        assert snapshot.degraded_sources == ("2025-Q1",)
        assert snapshot.force_closed is False

    def test_year_rolls_up_halves(self, lifecycle, periods, advance, complete_org, test_actor_id):
        org = complete_org(name="Sales", current="50")
        for code in ("2025-Q1", "2025-Q2", "2025-H1", "2025-Q3", "2025-Q4", "2025-H2", "2025"):
            advance(periods[code], "active", "closing", "closed")

        year = lifecycle.history.get_org_snapshot(periods["2025"], org.id)

        assert year.capture_kind == "rollup"
        assert year.total_objectives == 1
        assert year.weighted_achievement_rate == Decimal("50.00")
        assert lifecycle.history.get_company_summary(periods["2025"]).total_orgs == 1
