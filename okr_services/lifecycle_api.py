"""
Lifecycle API -- result-envelope entrypoint for the period engine.

Every operation opens its own transaction, runs against a
PeriodLifecycleService, and returns an OperationResult instead of raising:

    api = LifecycleAPI(get_session_factory())
    result = api.transition_period(period_id, "closed", actor_id)
    if not result.success and result.error_code == "PERIOD_BLOCKED":
        show(result.details["incomplete_items"])

Typed kernel errors become ``error_code`` values.  A PersistenceError
(including an optimistic version conflict) is retried in a fresh
transaction up to ``transition_retry_attempts`` times; each failed attempt
is rolled back whole, so a retry never leaves a second log row.  Any other
SQLAlchemy failure is reported as ``PERSISTENCE_ERROR``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from okr_config import get_active_config
from okr_config.schema import LifecyclePolicy
from okr_kernel.db.engine import get_session_factory, session_scope
from okr_kernel.db.immutability import register_immutability_listeners
from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.lifecycle import (
    PeriodStatus,
    PeriodType,
    available_actions,
    compute_progress,
)
from okr_kernel.exceptions import (
    ChildrenNotReadyError,
    ChildSnapshotsMissingError,
    InvalidTransitionError,
    OkrKernelError,
    PeriodBlockedError,
    PeriodNotFoundError,
    PersistenceError,
)
from okr_kernel.logging_config import get_logger
from okr_kernel.services.transition_service import CloseRoleResolver
from okr_services.period_lifecycle import LifecycleOutcome, PeriodLifecycleService

logger = get_logger("services.lifecycle_api")

INVALID_ARGUMENT = "INVALID_ARGUMENT"


@dataclass(frozen=True)
class OperationResult:
    """Envelope returned by every API operation."""

    success: bool
    data: Any = None
    error_code: str | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> OperationResult:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error_code: str,
        error: str,
        details: dict[str, Any] | None = None,
    ) -> OperationResult:
        return cls(success=False, error_code=error_code, error=error, details=details or {})

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form: UUIDs, decimals and dates become strings."""
        return {
            "success": self.success,
            "error_code": self.error_code,
            "error": self.error,
            "data": to_plain(self.data),
            "details": to_plain(self.details),
        }


def to_plain(value: Any) -> Any:
    """Recursively turn DTOs into JSON-compatible values."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        to_dict = getattr(value, "to_dict", None)
        if callable(to_dict):
            return to_plain(to_dict())
        return {f.name: to_plain(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(to_plain(k)): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_plain(v) for v in value]
    return str(value)


def _error_details(exc: OkrKernelError) -> dict[str, Any]:
    """Structured context the operator needs to act on a refusal."""
    if isinstance(exc, PeriodBlockedError):
        return {"incomplete_items": exc.report.to_dict()}
    if isinstance(exc, ChildrenNotReadyError):
        return {
            "closed_count": exc.closed_count,
            "total_count": exc.total_count,
            "blocking_children": [
                {"period_code": code, "status": status}
                for code, status in exc.blocking_children
            ],
        }
    if isinstance(exc, ChildSnapshotsMissingError):
        return {"missing_children": list(exc.missing_children)}
    return {}


class LifecycleAPI:
    """
    Public entrypoint over the period lifecycle.

    Args:
        session_factory: Where transactions come from (default: the
            module-level factory of okr_kernel.db.engine).
        policy: Lifecycle policy (default: get_active_config()).
        clock: Time source shared by every operation.
        role_resolver: Resolves actor authority for archiving.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        policy: LifecyclePolicy | None = None,
        clock: Clock | None = None,
        role_resolver: CloseRoleResolver | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._policy = policy or get_active_config()
        self._clock = clock or SystemClock()
        self._role_resolver = role_resolver
        # factories built outside init_engine_from_url get the history guards too
        register_immutability_listeners()

    @property
    def policy(self) -> LifecyclePolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        work: Callable[[PeriodLifecycleService], Any],
    ) -> OperationResult:
        attempts = max(1, self._policy.transition_retry_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                with session_scope(self._session_factory) as session:
                    lifecycle = PeriodLifecycleService(
                        session,
                        self._policy,
                        clock=self._clock,
                        role_resolver=self._role_resolver,
                    )
                    value = work(lifecycle)
            except (PersistenceError, SQLAlchemyError) as exc:
                if isinstance(exc, PersistenceError):
                    error = exc
                else:
                    error = PersistenceError(operation, str(exc))
                if attempt < attempts:
                    logger.warning(
                        "operation_retrying",
                        extra={
                            "operation": operation,
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "error_code": error.code,
                        },
                    )
                    continue
                logger.error(
                    "operation_failed",
                    extra={
                        "operation": operation,
                        "error_code": error.code,
                        "detail": error.detail,
                        "attempts": attempt,
                    },
                )
                return OperationResult.failure(error.code, str(error))
            except OkrKernelError as exc:
                logger.info(
                    "operation_rejected",
                    extra={"operation": operation, "error_code": exc.code},
                )
                return OperationResult.failure(exc.code, str(exc), _error_details(exc))
            return OperationResult.ok(value)

    @staticmethod
    def _invalid(message: str) -> OperationResult:
        return OperationResult.failure(INVALID_ARGUMENT, message)

    # ------------------------------------------------------------------
    # Contract operations
    # ------------------------------------------------------------------

    def create_fiscal_year(self, company_id: UUID, year: int, actor_id: UUID) -> OperationResult:
        """Create the year and its halves/quarters.  data: year_id, hierarchy."""

        def work(lifecycle: PeriodLifecycleService):
            info = lifecycle.create_fiscal_year(company_id, year, actor_id)
            return {"year_id": info.id, "hierarchy": info}

        return self._run("create_fiscal_year", work)

    def transition_period(
        self,
        period_id: UUID,
        to_status: PeriodStatus | str,
        actor_id: UUID,
        force: bool = False,
        force_reason: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """
        Move a period to ``to_status``.

        On PERIOD_BLOCKED the failure's ``details["incomplete_items"]`` lists
        exactly what is incomplete.
        """
        try:
            target = PeriodStatus(to_status)
        except ValueError:
            return self._invalid(f"Unknown period status: {to_status}")

        def work(lifecycle: PeriodLifecycleService):
            return _outcome_data(
                lifecycle.transition(
                    period_id,
                    target,
                    actor_id,
                    force=force,
                    force_reason=force_reason,
                    notes=notes,
                )
            )

        return self._run("transition_period", work)

    def get_incomplete_items(self, period_id: UUID) -> OperationResult:
        return self._run("get_incomplete_items", lambda lc: lc.get_incomplete_items(period_id))

    def create_snapshot(self, period_id: UUID, actor_id: UUID) -> OperationResult:
        return self._run("create_snapshot", lambda lc: lc.create_snapshot(period_id, actor_id))

    def create_continuity(
        self,
        source_objective_id: UUID,
        target_objective_id: UUID,
        continuity_type: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> OperationResult:
        return self._run(
            "create_continuity",
            lambda lc: lc.create_continuity(
                source_objective_id, target_objective_id, continuity_type, actor_id, notes=notes
            ),
        )

    def fetch_carry_over_candidates(
        self,
        company_id: UUID,
        previous_period_code: str,
        org_id: UUID | None = None,
    ) -> OperationResult:
        return self._run(
            "fetch_carry_over_candidates",
            lambda lc: lc.carry_over_candidates(company_id, previous_period_code, org_id),
        )

    def check_child_periods_status(self, period_id: UUID) -> OperationResult:
        return self._run(
            "check_child_periods_status",
            lambda lc: lc.period_service.check_child_periods_status(period_id),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_period_hierarchy(self, company_id: UUID, year: int) -> OperationResult:
        def work(lifecycle: PeriodLifecycleService):
            hierarchy = lifecycle.period_service.get_hierarchy(company_id, year)
            if hierarchy is None:
                raise PeriodNotFoundError(f"{company_id}/{year}")
            return hierarchy

        return self._run("fetch_period_hierarchy", work)

    def fetch_periods(
        self,
        company_id: UUID,
        period_type: PeriodType | str | None = None,
        status: PeriodStatus | str | None = None,
    ) -> OperationResult:
        try:
            ptype = PeriodType(period_type) if period_type is not None else None
            pstatus = PeriodStatus(status) if status is not None else None
        except ValueError as exc:
            return self._invalid(str(exc))
        return self._run(
            "fetch_periods",
            lambda lc: lc.periods.list_periods(company_id, period_type=ptype, status=pstatus),
        )

    def fetch_period_by_code(self, company_id: UUID, period_code: str) -> OperationResult:
        def work(lifecycle: PeriodLifecycleService):
            period = lifecycle.periods.get_by_code(company_id, period_code)
            if period is None:
                raise PeriodNotFoundError(period_code)
            return period

        return self._run("fetch_period_by_code", work)

    def fetch_active_period(
        self,
        company_id: UUID,
        period_type: PeriodType | str = PeriodType.QUARTER,
    ) -> OperationResult:
        """data is the active period, or None when no period of that type is active."""
        try:
            ptype = PeriodType(period_type)
        except ValueError as exc:
            return self._invalid(str(exc))
        return self._run(
            "fetch_active_period",
            lambda lc: lc.periods.get_active(company_id, period_type=ptype),
        )

    def fetch_archived_periods(self, company_id: UUID) -> OperationResult:
        return self._run("fetch_archived_periods", lambda lc: lc.periods.list_archived(company_id))

    def fetch_period_close_logs(self, period_id: UUID) -> OperationResult:
        def work(lifecycle: PeriodLifecycleService):
            lifecycle.periods.get_model(period_id)
            return lifecycle.history.close_logs(period_id)

        return self._run("fetch_period_close_logs", work)

    def fetch_period_snapshots(self, period_id: UUID, with_records: bool = False) -> OperationResult:
        return self._run(
            "fetch_period_snapshots",
            lambda lc: lc.history.list_snapshots(period_id, with_records=with_records),
        )

    def fetch_org_snapshot(self, period_id: UUID, org_id: UUID) -> OperationResult:
        return self._run(
            "fetch_org_snapshot",
            lambda lc: lc.history.get_org_snapshot(period_id, org_id),
        )

    def fetch_company_period_summary(self, period_id: UUID) -> OperationResult:
        return self._run(
            "fetch_company_period_summary",
            lambda lc: lc.history.get_company_summary(period_id),
        )

    def fetch_objective_continuity(self, objective_id: UUID) -> OperationResult:
        return self._run(
            "fetch_objective_continuity",
            lambda lc: lc.continuity.edges_for(objective_id),
        )

    def get_period_progress(self, period_id: UUID, now: datetime | None = None) -> OperationResult:
        if now is not None and now.tzinfo is None:
            return self._invalid("now must be timezone-aware")

        def work(lifecycle: PeriodLifecycleService):
            period = lifecycle.periods.get(period_id)
            return compute_progress(period.starts_at, period.ends_at, now or self._clock.now())

        return self._run("get_period_progress", work)

    def get_available_actions(self, status: PeriodStatus | str) -> OperationResult:
        """Operator actions for a status.  Pure; touches no session."""
        try:
            actions = available_actions(status)
        except ValueError:
            return self._invalid(f"Unknown period status: {status}")
        return OperationResult.ok([a.value for a in actions])

    # ------------------------------------------------------------------
    # Transition shortcuts
    # ------------------------------------------------------------------

    def _transition_from(
        self,
        operation: str,
        period_id: UUID,
        expected: PeriodStatus,
        target: PeriodStatus,
        actor_id: UUID,
        **kwargs: Any,
    ) -> OperationResult:
        """A transition that must start from ``expected``.

        Keeps activate and cancel apart: both land on ``active`` but from
        different statuses.
        """

        def work(lifecycle: PeriodLifecycleService):
            period = lifecycle.periods.get(period_id)
            if period.status != expected:
                raise InvalidTransitionError(period.period_code, period.status.value, target.value)
            return _outcome_data(lifecycle.transition(period_id, target, actor_id, **kwargs))

        return self._run(operation, work)

    def activate_period(self, period_id: UUID, actor_id: UUID) -> OperationResult:
        return self._transition_from(
            "activate_period", period_id, PeriodStatus.UPCOMING, PeriodStatus.ACTIVE, actor_id
        )

    def start_closing(self, period_id: UUID, actor_id: UUID) -> OperationResult:
        return self.transition_period(period_id, PeriodStatus.CLOSING, actor_id)

    def close_period(self, period_id: UUID, actor_id: UUID, notes: str | None = None) -> OperationResult:
        return self.transition_period(period_id, PeriodStatus.CLOSED, actor_id, notes=notes)

    def force_close_period(
        self,
        period_id: UUID,
        actor_id: UUID,
        force_reason: str,
        notes: str | None = None,
    ) -> OperationResult:
        return self.transition_period(
            period_id,
            PeriodStatus.CLOSED,
            actor_id,
            force=True,
            force_reason=force_reason,
            notes=notes,
        )

    def cancel_closing(self, period_id: UUID, actor_id: UUID) -> OperationResult:
        return self._transition_from(
            "cancel_closing", period_id, PeriodStatus.CLOSING, PeriodStatus.ACTIVE, actor_id
        )

    def archive_period(self, period_id: UUID, actor_id: UUID) -> OperationResult:
        return self.transition_period(period_id, PeriodStatus.ARCHIVED, actor_id)


def _outcome_data(outcome: LifecycleOutcome) -> dict[str, Any]:
    transition = outcome.transition
    return {
        "period": transition.period,
        "from_status": transition.from_status,
        "to_status": transition.to_status,
        "action": transition.action,
        "log_id": transition.log_id,
        "forced": transition.forced,
        "incomplete_items": transition.incomplete_items,
        "warnings": list(transition.warnings),
        "snapshot": outcome.snapshot,
    }
