"""
Pytest fixtures for the OKR period engine test suite.

Provides:
- A fresh database per test (in-memory SQLite unless OKR_DATABASE_URL is set)
- Structured logging at DEBUG and a ``captured_logs`` fixture
- A DeterministicClock and a default LifecyclePolicy
- Factories for organizations, goal sets, objectives, key results and check-ins

Environment Variables:
- OKR_DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to
  sqlite:///:memory:.  Tables are dropped and recreated for every test.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from okr_config.schema import LifecyclePolicy
from okr_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_env,
    reset_engine,
)
from okr_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from okr_kernel.domain.clock import DeterministicClock
from okr_kernel.domain.dtos import FiscalPeriodInfo
from okr_kernel.domain.lifecycle import PeriodStatus
from okr_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from okr_kernel.models.objective import CheckIn, KeyResult, Objective, ObjectiveStatus
from okr_kernel.models.organization import GoalSet, GoalSetStatus, Organization
from okr_services.period_lifecycle import PeriodLifecycleService

# Test actor and company for all test operations
TEST_ACTOR_ID = uuid4()
TEST_COMPANY_ID = uuid4()

TEST_NOW = datetime(2025, 2, 15, 9, 0, 0, tzinfo=timezone.utc)

DEFAULT_DATABASE_URL = "sqlite:///:memory:"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture okr_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.transition(...)
            logs = captured_logs()
            assert any(r["message"] == "period_transitioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("okr_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    """Immutability listeners stay registered for the whole run."""
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def db_engine():
    """Fresh engine and schema per test."""
    eng = init_engine_from_env(default_url=DEFAULT_DATABASE_URL)
    drop_tables(eng)
    create_tables(eng)
    yield eng
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session the test drives directly; never committed."""
    sess = session_factory()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


# =============================================================================
# Lifecycle
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def company_id() -> UUID:
    return TEST_COMPANY_ID


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def policy() -> LifecyclePolicy:
    """Product defaults with UTC period boundaries."""
    return LifecyclePolicy()


@pytest.fixture
def lifecycle(session, policy, clock) -> PeriodLifecycleService:
    return PeriodLifecycleService(session, policy, clock=clock)


def flatten_periods(info: FiscalPeriodInfo) -> dict[str, FiscalPeriodInfo]:
    """period_code -> period for a hierarchy returned with children."""
    result = {info.period_code: info}
    for child in info.child_periods:
        result.update(flatten_periods(child))
    return result


@pytest.fixture
def fiscal_year(lifecycle, company_id, test_actor_id) -> FiscalPeriodInfo:
    """FY2025 (calendar year), all periods upcoming."""
    return lifecycle.create_fiscal_year(company_id, 2025, test_actor_id)


@pytest.fixture
def periods(fiscal_year) -> dict[str, UUID]:
    """period_code -> period id for FY2025."""
    return {code: p.id for code, p in flatten_periods(fiscal_year).items()}


@pytest.fixture
def advance(lifecycle, test_actor_id):
    """
    Walk a period through successive statuses.

    Usage::

        advance(periods["2025-Q1"], "active", "closing")
    """

    def _advance(period_id: UUID, *statuses: str, **kwargs):
        outcome = None
        for status in statuses:
            outcome = lifecycle.transition(period_id, PeriodStatus(status), test_actor_id, **kwargs)
        return outcome

    return _advance


# =============================================================================
# OKR data factories
# =============================================================================


@pytest.fixture
def create_org(session, company_id, test_actor_id):
    def _create(
        name: str = "Sales",
        level: str = "team",
        is_active: bool = True,
        company: UUID | None = None,
    ) -> Organization:
        org = Organization(
            company_id=company or company_id,
            name=name,
            level=level,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(org)
        session.flush()
        return org

    return _create


@pytest.fixture
def create_goal_set(session, test_actor_id):
    def _create(
        org: Organization,
        period_code: str = "2025-Q1",
        status: str = GoalSetStatus.APPROVED.value,
        version: int = 1,
    ) -> GoalSet:
        goal_set = GoalSet(
            org_id=org.id,
            period_code=period_code,
            status=status,
            version=version,
            created_by_id=test_actor_id,
        )
        session.add(goal_set)
        session.flush()
        return goal_set

    return _create


@pytest.fixture
def create_objective(session, test_actor_id):
    def _create(
        org: Organization,
        period_code: str = "2025-Q1",
        name: str = "Grow revenue",
        status: str = ObjectiveStatus.ACTIVE.value,
        bii_type: str | None = "Build",
        sort_order: int = 0,
    ) -> Objective:
        objective = Objective(
            org_id=org.id,
            period_code=period_code,
            name=name,
            status=status,
            bii_type=bii_type,
            sort_order=sort_order,
            created_by_id=test_actor_id,
        )
        session.add(objective)
        session.flush()
        return objective

    return _create


@pytest.fixture
def create_key_result(session, test_actor_id):
    def _create(
        objective: Objective,
        name: str = "Close deals",
        target: str | Decimal = "100",
        current: str | Decimal = "80",
        weight: str | Decimal = "100",
        unit: str = "%",
        sort_order: int = 0,
        **extra,
    ) -> KeyResult:
        kr = KeyResult(
            objective=objective,
            org_id=objective.org_id,
            name=name,
            target_value=Decimal(target),
            current_value=Decimal(current),
            weight=Decimal(weight),
            unit=unit,
            sort_order=sort_order,
            created_by_id=test_actor_id,
            **extra,
        )
        session.add(kr)
        session.flush()
        return kr

    return _create


@pytest.fixture
def create_check_in(session, clock, test_actor_id):
    def _create(
        kr: KeyResult,
        period_code: str = "2025-Q1",
        value: str | Decimal = "80",
        comment: str | None = None,
    ) -> CheckIn:
        check_in = CheckIn(
            kr_id=kr.id,
            period_code=period_code,
            value=Decimal(value),
            comment=comment,
            checked_by_id=test_actor_id,
            checked_at=clock.now(),
            created_by_id=test_actor_id,
        )
        session.add(check_in)
        session.flush()
        return check_in

    return _create


@pytest.fixture
def complete_org(create_org, create_goal_set, create_objective, create_key_result, create_check_in):
    """
    An organization with nothing incomplete in a period.

    Approved goal set, one objective, one fully weighted key result at
    80/100 with a check-in.
    """

    def _create(
        name: str = "Sales",
        period_code: str = "2025-Q1",
        org: Organization | None = None,
        current: str = "80",
    ) -> Organization:
        org = org or create_org(name=name)
        create_goal_set(org, period_code=period_code)
        objective = create_objective(org, period_code=period_code, name=f"{name} objective")
        kr = create_key_result(objective, name=f"{name} KR", current=current)
        create_check_in(kr, period_code=period_code, value=current)
        return org

    return _create
