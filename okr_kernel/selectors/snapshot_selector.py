"""
Module: okr_kernel.selectors.snapshot_selector
Responsibility: Read-only queries over the lifecycle's historical record:
    per-organization snapshots, company summaries, the close log trail, and
    objective continuity edges.
Architecture position: Kernel > Selectors.  May import from db/, models/, domain/.

Invariants enforced:
    - Close logs are returned in ``sequence`` order (oldest first).
    - Snapshot records are decoded to their current schema version on read.
    - Continuity lookups match the objective at either endpoint.

Failure modes:
    - SnapshotRecordError if a stored payload cannot be decoded.
"""

from uuid import UUID

from sqlalchemy import func, or_, select

from okr_kernel.domain.dtos import (
    CloseLogEntry,
    CompanySummaryInfo,
    ContinuityEdge,
    SnapshotInfo,
)
from okr_kernel.models.objective_continuity import ObjectiveContinuity
from okr_kernel.models.period_close_log import PeriodCloseLog
from okr_kernel.models.period_snapshot import CompanyPeriodSummary, PeriodSnapshot
from okr_kernel.selectors.base import BaseSelector


class SnapshotSelector(BaseSelector[PeriodSnapshot]):
    """Selector for snapshots, company summaries, close logs and continuity."""

    # =========================================================================
    # Snapshots
    # =========================================================================

    def snapshot_models(self, period_id: UUID) -> list[PeriodSnapshot]:
        return list(
            self.session.execute(
                select(PeriodSnapshot)
                .where(PeriodSnapshot.period_id == period_id)
                .order_by(PeriodSnapshot.organization_name, PeriodSnapshot.organization_id)
            ).scalars()
        )

    def snapshot_count(self, period_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(PeriodSnapshot)
            .where(PeriodSnapshot.period_id == period_id)
        ).scalar_one()

    def list_snapshots(
        self,
        period_id: UUID,
        with_records: bool = False,
    ) -> list[SnapshotInfo]:
        """All organization snapshots of a period, ordered by organization name."""
        return [
            SnapshotInfo.from_model(s, with_records=with_records)
            for s in self.snapshot_models(period_id)
        ]

    def get_org_snapshot(self, period_id: UUID, org_id: UUID) -> SnapshotInfo | None:
        snapshot = self.session.execute(
            select(PeriodSnapshot).where(
                PeriodSnapshot.period_id == period_id,
                PeriodSnapshot.organization_id == org_id,
            )
        ).scalar_one_or_none()
        return SnapshotInfo.from_model(snapshot) if snapshot else None

    # =========================================================================
    # Company summary
    # =========================================================================

    def summary_model(self, period_id: UUID) -> CompanyPeriodSummary | None:
        return self.session.execute(
            select(CompanyPeriodSummary).where(CompanyPeriodSummary.period_id == period_id)
        ).scalar_one_or_none()

    def get_company_summary(self, period_id: UUID) -> CompanySummaryInfo | None:
        summary = self.summary_model(period_id)
        return CompanySummaryInfo.from_model(summary) if summary else None

    def periods_with_summary(self, period_ids: list[UUID]) -> set[UUID]:
        """The subset of ``period_ids`` that have a company summary."""
        if not period_ids:
            return set()
        return set(
            self.session.execute(
                select(CompanyPeriodSummary.period_id).where(
                    CompanyPeriodSummary.period_id.in_(period_ids)
                )
            ).scalars()
        )

    # =========================================================================
    # Close log
    # =========================================================================

    def close_logs(self, period_id: UUID) -> list[CloseLogEntry]:
        logs = self.session.execute(
            select(PeriodCloseLog)
            .where(PeriodCloseLog.period_id == period_id)
            .order_by(PeriodCloseLog.sequence)
        ).scalars()
        return [CloseLogEntry.from_model(log) for log in logs]

    def last_sequence(self, period_id: UUID) -> int:
        """Highest close log sequence for a period; 0 when it has none."""
        return self.session.execute(
            select(func.coalesce(func.max(PeriodCloseLog.sequence), 0)).where(
                PeriodCloseLog.period_id == period_id
            )
        ).scalar_one()

    # =========================================================================
    # Continuity
    # =========================================================================

    def continuity_edges(self, objective_id: UUID) -> list[ContinuityEdge]:
        """Edges where the objective is the source or the target."""
        edges = self.session.execute(
            select(ObjectiveContinuity)
            .where(
                or_(
                    ObjectiveContinuity.source_objective_id == objective_id,
                    ObjectiveContinuity.target_objective_id == objective_id,
                )
            )
            .order_by(ObjectiveContinuity.created_at, ObjectiveContinuity.id)
        ).scalars()
        return [ContinuityEdge.from_model(e) for e in edges]

    def edge_exists(self, source_objective_id: UUID, target_objective_id: UUID) -> bool:
        return (
            self.session.execute(
                select(ObjectiveContinuity.id).where(
                    ObjectiveContinuity.source_objective_id == source_objective_id,
                    ObjectiveContinuity.target_objective_id == target_objective_id,
                )
            ).first()
            is not None
        )
