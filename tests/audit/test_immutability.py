"""
Immutability of period history.

Snapshots, company summaries and close log rows never change after
insert.  Periods keep their structure forever, change status only along
lifecycle edges, and freeze entirely once archived.  Nothing is deleted.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from okr_kernel.db.engine import create_tables, init_engine_from_url, reset_engine, session_scope
from okr_kernel.db.immutability import register_immutability_listeners, unregister_immutability_listeners
from okr_kernel.domain.lifecycle import PeriodStatus
from okr_kernel.exceptions import ImmutabilityViolationError
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.models.period_close_log import PeriodCloseLog
from okr_kernel.models.period_snapshot import CompanyPeriodSummary, PeriodSnapshot
from okr_services.lifecycle_api import LifecycleAPI
from tests.conftest import DEFAULT_DATABASE_URL


@pytest.fixture
def closed_q1(periods, advance, complete_org):
    complete_org(name="Sales")
    advance(periods["2025-Q1"], "active", "closing", "closed")
    return periods["2025-Q1"]


def _first(session, model, period_id):
    return session.execute(select(model).where(model.period_id == period_id)).scalars().first()


class TestAppendOnlyRecords:

    @pytest.mark.parametrize(
        "model, field",
        [
            (PeriodSnapshot, "organization_name"),
            (CompanyPeriodSummary, "total_orgs"),
            (PeriodCloseLog, "action"),
        ],
    )
    def test_update_blocked(self, session, closed_q1, model, field):
        record = _first(session, model, closed_q1)
        setattr(record, field, 42 if field == "total_orgs" else "edited")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    @pytest.mark.parametrize("model", [PeriodSnapshot, CompanyPeriodSummary, PeriodCloseLog])
    def test_delete_blocked(self, session, closed_q1, model):
        session.delete(_first(session, model, closed_q1))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_snapshot_figures_frozen(self, session, closed_q1, captured_logs):
        snapshot = _first(session, PeriodSnapshot, closed_q1)
        snapshot.total_objectives = 99

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "PeriodSnapshot"
        assert any(
            r["message"] == "immutability_violation_blocked" and r["field"] == "total_objectives"
            for r in captured_logs()
        )


class TestFiscalPeriod:

    def test_structure_fixed(self, session, lifecycle, periods):
        period = lifecycle.periods.get_model(periods["2025-Q1"])
        period.ends_at = period.ends_at + timedelta(days=1)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_status_only_along_edges(self, session, lifecycle, periods):
        period = lifecycle.periods.get_model(periods["2025-Q1"])
        period.status = "closed"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_open_period_name_editable(self, session, lifecycle, periods):
        period = lifecycle.periods.get_model(periods["2025-Q1"])
        period.period_name = "Q1 (kickoff)"

        session.flush()

        assert lifecycle.periods.get(periods["2025-Q1"]).period_name == "Q1 (kickoff)"

    def test_archived_period_frozen(self, session, lifecycle, closed_q1, advance):
        advance(closed_q1, "archived")
        period = lifecycle.periods.get_model(closed_q1)
        period.close_notes = "rewritten"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, lifecycle, periods):
        session.delete(lifecycle.periods.get_model(periods["2025-Q4"]))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestStartup:

    @pytest.fixture
    def unguarded(self):
        unregister_immutability_listeners()
        yield
        register_immutability_listeners()
        reset_engine()

    def test_engine_init_installs_guards(self, unguarded, policy, clock, company_id, test_actor_id):
        init_engine_from_url(DEFAULT_DATABASE_URL)
        create_tables()
        api = LifecycleAPI(policy=policy, clock=clock)
        year_id = api.create_fiscal_year(company_id, 2025, test_actor_id).data["year_id"]

        with pytest.raises(ImmutabilityViolationError):
            with session_scope() as session:
                period = session.get(FiscalPeriod, year_id)
                period.period_code = "HACKED"
                period.status = PeriodStatus.ARCHIVED.value

        stored = api.fetch_period_by_code(company_id, "2025").data
        assert stored.status == PeriodStatus.UPCOMING
        assert api.fetch_period_by_code(company_id, "HACKED").error_code == "PERIOD_NOT_FOUND"
