"""
okr_services.period_lifecycle -- Wires the lifecycle kernel to the engines.

Responsibility:
    Builds the kernel services, the incompleteness detector and the
    snapshot service for one session from a LifecyclePolicy, and runs a
    transition together with its follow-up (the snapshot on a successful
    close) as one unit of work.

Architecture position:
    Services -- the composition root used by the close wizard and the
    result-envelope API.

Invariants enforced:
    - Every status change goes through TransitionService; nothing here
      writes FiscalPeriod.status.
    - With ``snapshot_on_close`` set, a close and its snapshot share the
      caller's transaction: if the snapshot fails, the close rolls back
      with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from okr_config.bridges import approved_statuses, build_grading_policy, operational_unit
from okr_config.schema import LifecyclePolicy
from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.dtos import (
    CarryOverCandidate,
    ContinuityEdge,
    FiscalPeriodInfo,
    IncompleteItemsReport,
    SnapshotResult,
    TransitionOutcome,
)
from okr_kernel.domain.lifecycle import PeriodStatus
from okr_kernel.logging_config import get_logger
from okr_kernel.models.objective_continuity import ContinuityType
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_kernel.selectors.snapshot_selector import SnapshotSelector
from okr_kernel.services.continuity_service import ContinuityService
from okr_kernel.services.period_service import PeriodService
from okr_kernel.services.transition_service import CloseRoleResolver, TransitionService
from okr_services.carry_over import CarryOverService
from okr_services.incomplete_items import IncompleteItemsDetector
from okr_services.snapshot_service import SnapshotService

logger = get_logger("services.period_lifecycle")


@dataclass(frozen=True)
class LifecycleOutcome:
    """A transition and, for a close, the snapshot taken with it."""

    transition: TransitionOutcome
    snapshot: SnapshotResult | None = None


class PeriodLifecycleService:
    """
    Per-session facade over the lifecycle.

    Contract:
        Receives a session, the active policy, a clock and an optional role
        resolver; constructs every collaborator from them.  Flush-only like
        the services it composes.
    """

    def __init__(
        self,
        session: Session,
        policy: LifecyclePolicy,
        clock: Clock | None = None,
        role_resolver: CloseRoleResolver | None = None,
    ) -> None:
        self.session = session
        self.policy = policy
        self.clock = clock or SystemClock()

        grading = build_grading_policy(policy)
        self.periods = PeriodSelector(session)
        self.history = SnapshotSelector(session)
        self.period_service = PeriodService(
            session,
            start_month=policy.fiscal_year_start_month,
            timezone_offset_hours=policy.timezone_offset_hours,
            operational_unit=operational_unit(policy),
        )
        self.detector = IncompleteItemsDetector(
            session,
            clock=self.clock,
            approved_statuses=approved_statuses(policy),
            grading_policy=grading,
        )
        self.transitions = TransitionService(
            session,
            detector=self.detector,
            clock=self.clock,
            role_resolver=role_resolver,
            archive_requires_admin=policy.archive_requires_admin,
        )
        self.snapshots = SnapshotService(
            session,
            clock=self.clock,
            grading_policy=grading,
            ranking_size=policy.ranking_size,
        )
        self.continuity = ContinuityService(session)
        self.carry_over = CarryOverService(session)

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    def create_fiscal_year(self, company_id: UUID, year: int, actor_id: UUID) -> FiscalPeriodInfo:
        return self.period_service.create_fiscal_year(company_id, year, actor_id)

    def transition(
        self,
        period_id: UUID,
        to_status: PeriodStatus | str,
        actor_id: UUID,
        force: bool = False,
        force_reason: str | None = None,
        notes: str | None = None,
    ) -> LifecycleOutcome:
        """Run one transition; snapshot the period if it just closed."""
        outcome = self.transitions.transition(
            period_id,
            to_status,
            actor_id,
            force=force,
            force_reason=force_reason,
            notes=notes,
        )

        snapshot = None
        if outcome.to_status == PeriodStatus.CLOSED and self.policy.snapshot_on_close:
            snapshot = self.snapshots.create_snapshot(period_id, actor_id)
            logger.info(
                "period_closed_with_snapshot",
                extra={
                    "period_id": str(period_id),
                    "period_code": outcome.period.period_code,
                    "forced": outcome.forced,
                    "snapshot_count": snapshot.snapshot_count,
                },
            )
        return LifecycleOutcome(transition=outcome, snapshot=snapshot)

    def get_incomplete_items(self, period_id: UUID) -> IncompleteItemsReport:
        return self.detector.detect(period_id)

    def create_snapshot(self, period_id: UUID, actor_id: UUID) -> SnapshotResult:
        return self.snapshots.create_snapshot(period_id, actor_id)

    # ------------------------------------------------------------------
    # Continuity
    # ------------------------------------------------------------------

    def create_continuity(
        self,
        source_objective_id: UUID,
        target_objective_id: UUID,
        continuity_type: ContinuityType | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ContinuityEdge:
        return self.continuity.create_edge(
            source_objective_id,
            target_objective_id,
            continuity_type,
            actor_id,
            notes=notes,
        )

    def carry_over_candidates(
        self,
        company_id: UUID,
        previous_period_code: str,
        org_id: UUID | None = None,
    ) -> list[CarryOverCandidate]:
        return self.carry_over.candidates(company_id, previous_period_code, org_id)
