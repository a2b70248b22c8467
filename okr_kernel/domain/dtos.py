"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the service boundary:
    period views (FiscalPeriodInfo with its hierarchy), the child readiness
    gate, the incomplete-items report, transition outcomes, snapshot and
    summary views, continuity edges, and carry-over candidates.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the selector and service layers (never from domain logic).

Invariants enforced:
    - Callers above the kernel never receive ORM entities.
    - IncompleteItemsReport.to_dict() is the exact shape persisted on a
      forced closure and copied onto its snapshots; from_dict() reverses it.

Audit relevance:
    The incomplete-items report is the audit evidence behind every forced
    closure.  Its serialized form is stable and versioned by key names only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus, PeriodType
from okr_kernel.domain.snapshot_records import (
    CheckInRecord,
    KeyResultRecord,
    ObjectiveRecord,
    decode_records,
)

if TYPE_CHECKING:
    from okr_kernel.models.fiscal_period import FiscalPeriod as FiscalPeriodModel
    from okr_kernel.models.objective_continuity import (
        ObjectiveContinuity as ObjectiveContinuityModel,
    )
    from okr_kernel.models.period_close_log import PeriodCloseLog as PeriodCloseLogModel
    from okr_kernel.models.period_snapshot import (
        CompanyPeriodSummary as CompanyPeriodSummaryModel,
        PeriodSnapshot as PeriodSnapshotModel,
    )


# =============================================================================
# Periods
# =============================================================================


@dataclass(frozen=True)
class FiscalPeriodInfo:
    """
    Pure domain representation of a fiscal period.

    Contract:
        Immutable view of period state.  ``child_periods`` is populated only
        by hierarchy queries; elsewhere it is empty and says nothing about
        whether the period is a leaf.
    """

    id: UUID
    company_id: UUID
    period_type: PeriodType
    period_code: str
    period_name: str
    parent_period_id: UUID | None
    starts_at: datetime
    ends_at: datetime
    status: PeriodStatus
    version: int
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    close_notes: str | None = None
    force_closed: bool = False
    force_close_reason: str | None = None
    force_closed_by_id: UUID | None = None
    force_closed_at: datetime | None = None
    incomplete_items: dict[str, Any] | None = None
    child_periods: tuple[FiscalPeriodInfo, ...] = ()

    def contains(self, instant: datetime) -> bool:
        return self.starts_at <= instant < self.ends_at

    @classmethod
    def from_model(
        cls,
        model: FiscalPeriodModel,
        depth: int = 0,
    ) -> FiscalPeriodInfo:
        """
        Create a FiscalPeriodInfo from a FiscalPeriod ORM model.

        Args:
            model: FiscalPeriod ORM model instance.
            depth: Levels of ``children`` to include (0 = none).
        """
        children: tuple[FiscalPeriodInfo, ...] = ()
        if depth > 0:
            children = tuple(cls.from_model(c, depth - 1) for c in model.children)
        return cls(
            id=model.id,
            company_id=model.company_id,
            period_type=PeriodType(model.period_type),
            period_code=model.period_code,
            period_name=model.period_name,
            parent_period_id=model.parent_period_id,
            starts_at=model.starts_at,
            ends_at=model.ends_at,
            status=PeriodStatus(model.status),
            version=model.version,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            close_notes=model.close_notes,
            force_closed=model.force_closed,
            force_close_reason=model.force_close_reason,
            force_closed_by_id=model.force_closed_by_id,
            force_closed_at=model.force_closed_at,
            incomplete_items=model.incomplete_items,
            child_periods=children,
        )


@dataclass(frozen=True)
class ChildPeriodsStatus:
    """
    Readiness of a period's direct children for aggregation.

    can_aggregate is True iff every direct child is closed or archived.  A
    period without children has total_count == 0 and is a leaf.
    """

    period_id: UUID
    period_code: str
    closed_count: int
    total_count: int
    can_aggregate: bool
    blocking_children: tuple[tuple[str, str], ...] = ()

    @property
    def is_leaf(self) -> bool:
        return self.total_count == 0


# =============================================================================
# Incomplete items
# =============================================================================


@dataclass(frozen=True)
class UnapprovedGoalSet:
    org_id: UUID
    org_name: str
    org_level: str
    status: str  # goal set status, or "missing" when none was ever created
    objective_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "org_id": str(self.org_id),
            "org_name": self.org_name,
            "org_level": self.org_level,
            "status": self.status,
            "objective_count": self.objective_count,
        }


@dataclass(frozen=True)
class KrWithoutCheckin:
    kr_id: UUID
    kr_name: str
    objective_name: str
    org_id: UUID
    org_name: str
    current_value: Decimal
    target_value: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "kr_id": str(self.kr_id),
            "kr_name": self.kr_name,
            "objective_name": self.objective_name,
            "org_id": str(self.org_id),
            "org_name": self.org_name,
            "current_value": str(self.current_value),
            "target_value": str(self.target_value),
        }


@dataclass(frozen=True)
class ZeroAchievementOrg:
    org_id: UUID
    org_name: str
    kr_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "org_id": str(self.org_id),
            "org_name": self.org_name,
            "kr_count": self.kr_count,
        }


@dataclass(frozen=True)
class IncompleteItemsReport:
    """
    Read-only analysis of what is still incomplete in a period.

    Contract:
        Advisory only.  The detector never decides whether the report
        blocks anything; TransitionService does.

    Guarantees:
        - Lists are ordered deterministically (org name, then names, then ids).
        - to_dict() output is JSON-safe.
    """

    period_id: UUID
    period_code: str
    generated_at: datetime
    unapproved_sets: tuple[UnapprovedGoalSet, ...] = ()
    krs_without_checkin: tuple[KrWithoutCheckin, ...] = ()
    zero_achievement_orgs: tuple[ZeroAchievementOrg, ...] = ()

    @property
    def total_count(self) -> int:
        return (
            len(self.unapproved_sets)
            + len(self.krs_without_checkin)
            + len(self.zero_achievement_orgs)
        )

    @property
    def has_blocking_items(self) -> bool:
        return self.total_count > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": str(self.period_id),
            "period_code": self.period_code,
            "generated_at": self.generated_at.isoformat(),
            "unapproved_sets": [i.to_dict() for i in self.unapproved_sets],
            "krs_without_checkin": [i.to_dict() for i in self.krs_without_checkin],
            "zero_achievement_orgs": [i.to_dict() for i in self.zero_achievement_orgs],
            "counts": {
                "unapproved_sets": len(self.unapproved_sets),
                "krs_without_checkin": len(self.krs_without_checkin),
                "zero_achievement_orgs": len(self.zero_achievement_orgs),
                "total": self.total_count,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IncompleteItemsReport:
        return cls(
            period_id=UUID(data["period_id"]),
            period_code=data["period_code"],
            generated_at=datetime.fromisoformat(data["generated_at"]),
            unapproved_sets=tuple(
                UnapprovedGoalSet(
                    org_id=UUID(i["org_id"]),
                    org_name=i["org_name"],
                    org_level=i["org_level"],
                    status=i["status"],
                    objective_count=i["objective_count"],
                )
                for i in data.get("unapproved_sets", [])
            ),
            krs_without_checkin=tuple(
                KrWithoutCheckin(
                    kr_id=UUID(i["kr_id"]),
                    kr_name=i["kr_name"],
                    objective_name=i["objective_name"],
                    org_id=UUID(i["org_id"]),
                    org_name=i["org_name"],
                    current_value=Decimal(i["current_value"]),
                    target_value=Decimal(i["target_value"]),
                )
                for i in data.get("krs_without_checkin", [])
            ),
            zero_achievement_orgs=tuple(
                ZeroAchievementOrg(
                    org_id=UUID(i["org_id"]),
                    org_name=i["org_name"],
                    kr_count=i["kr_count"],
                )
                for i in data.get("zero_achievement_orgs", [])
            ),
        )


# =============================================================================
# Transitions and audit
# =============================================================================


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one successful status transition."""

    period: FiscalPeriodInfo
    from_status: PeriodStatus
    to_status: PeriodStatus
    action: CloseLogAction
    log_id: UUID
    forced: bool = False
    incomplete_items: IncompleteItemsReport | None = None
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class CloseLogEntry:
    id: UUID
    period_id: UUID
    sequence: int
    action: CloseLogAction
    from_status: PeriodStatus | None
    to_status: PeriodStatus | None
    actor_id: UUID
    performed_at: datetime
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, model: PeriodCloseLogModel) -> CloseLogEntry:
        return cls(
            id=model.id,
            period_id=model.period_id,
            sequence=model.sequence,
            action=CloseLogAction(model.action),
            from_status=PeriodStatus(model.from_status) if model.from_status else None,
            to_status=PeriodStatus(model.to_status) if model.to_status else None,
            actor_id=model.created_by_id,
            performed_at=model.performed_at,
            details=dict(model.details or {}),
        )


# =============================================================================
# Snapshots
# =============================================================================


@dataclass(frozen=True)
class SnapshotInfo:
    """
    Read view of one PeriodSnapshot with its records decoded.

    Records are always in their current schema shape regardless of the
    version they were written with.
    """

    id: UUID
    period_id: UUID
    organization_id: UUID
    organization_name: str
    capture_kind: str
    captured_at: datetime
    captured_by_id: UUID
    total_objectives: int
    total_key_results: int
    total_check_ins: int
    avg_achievement_rate: Decimal
    weighted_achievement_rate: Decimal
    grade_distribution: dict[str, int]
    bii_distribution: dict[str, int]
    perspective_distribution: dict[str, int]
    status_summary: dict[str, int]
    weight_anomalies: tuple[str, ...]
    force_closed: bool
    force_close_reason: str | None
    incomplete_items: dict[str, Any] | None
    degraded_sources: tuple[str, ...]
    source_snapshot_ids: tuple[str, ...]
    objectives: tuple[ObjectiveRecord, ...] = ()
    key_results: tuple[KeyResultRecord, ...] = ()
    check_ins: tuple[CheckInRecord, ...] = ()

    @classmethod
    def from_model(cls, model: PeriodSnapshotModel, with_records: bool = True) -> SnapshotInfo:
        """
        Raises:
            SnapshotRecordError: if a stored record cannot be decoded.
        """
        objectives: tuple = ()
        key_results: tuple = ()
        check_ins: tuple = ()
        if with_records:
            objectives = tuple(decode_records(model.objectives_snapshot))
            key_results = tuple(decode_records(model.key_results_snapshot))
            check_ins = tuple(decode_records(model.check_ins_snapshot))
        return cls(
            id=model.id,
            period_id=model.period_id,
            organization_id=model.organization_id,
            organization_name=model.organization_name,
            capture_kind=model.capture_kind,
            captured_at=model.captured_at,
            captured_by_id=model.created_by_id,
            total_objectives=model.total_objectives,
            total_key_results=model.total_key_results,
            total_check_ins=model.total_check_ins,
            avg_achievement_rate=model.avg_achievement_rate,
            weighted_achievement_rate=model.weighted_achievement_rate,
            grade_distribution=dict(model.grade_distribution),
            bii_distribution=dict(model.bii_distribution),
            perspective_distribution=dict(model.perspective_distribution),
            status_summary=dict(model.status_summary),
            weight_anomalies=tuple(model.weight_anomalies or ()),
            force_closed=model.force_closed,
            force_close_reason=model.force_close_reason,
            incomplete_items=model.incomplete_items,
            degraded_sources=tuple(model.degraded_sources or ()),
            source_snapshot_ids=tuple(model.source_snapshot_ids or ()),
            objectives=objectives,
            key_results=key_results,
            check_ins=check_ins,
        )


@dataclass(frozen=True)
class CompanySummaryInfo:
    id: UUID
    period_id: UUID
    company_id: UUID
    computed_at: datetime
    total_orgs: int
    total_objectives: int
    total_key_results: int
    company_avg_achievement: Decimal
    top_performers: tuple[dict[str, Any], ...]
    low_performers: tuple[dict[str, Any], ...]
    grade_distribution: dict[str, int]
    bii_distribution: dict[str, int]
    perspective_distribution: dict[str, int]

    @classmethod
    def from_model(cls, model: CompanyPeriodSummaryModel) -> CompanySummaryInfo:
        return cls(
            id=model.id,
            period_id=model.period_id,
            company_id=model.company_id,
            computed_at=model.computed_at,
            total_orgs=model.total_orgs,
            total_objectives=model.total_objectives,
            total_key_results=model.total_key_results,
            company_avg_achievement=model.company_avg_achievement,
            top_performers=tuple(model.top_performers),
            low_performers=tuple(model.low_performers),
            grade_distribution=dict(model.grade_distribution),
            bii_distribution=dict(model.bii_distribution),
            perspective_distribution=dict(model.perspective_distribution),
        )


@dataclass(frozen=True)
class SnapshotResult:
    """Outcome of capturing (or rolling up) one period."""

    period_id: UUID
    period_code: str
    capture_kind: str
    snapshot_count: int
    snapshot_ids: tuple[UUID, ...]
    summary_id: UUID
    log_id: UUID


# =============================================================================
# Continuity
# =============================================================================


@dataclass(frozen=True)
class ContinuityEdge:
    id: UUID
    source_objective_id: UUID
    target_objective_id: UUID
    source_period_code: str
    target_period_code: str
    continuity_type: str
    notes: str | None
    created_by_id: UUID

    def involves(self, objective_id: UUID) -> bool:
        return objective_id in (self.source_objective_id, self.target_objective_id)

    @classmethod
    def from_model(cls, model: ObjectiveContinuityModel) -> ContinuityEdge:
        return cls(
            id=model.id,
            source_objective_id=model.source_objective_id,
            target_objective_id=model.target_objective_id,
            source_period_code=model.source_period_code,
            target_period_code=model.target_period_code,
            continuity_type=model.continuity_type,
            notes=model.notes,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class CarryOverKeyResult:
    kr_id: UUID
    name: str
    unit: str
    weight: Decimal
    target_value: Decimal
    current_value: Decimal
    achievement_rate: Decimal


@dataclass(frozen=True)
class CarryOverCandidate:
    """
    An objective from a prior period offered for carry-over.

    ``achievement_rate`` is the unweighted mean of key result ratios.  It
    is intentionally not the snapshot's weighted figure; the two can differ.
    """

    objective_id: UUID
    objective_name: str
    org_id: UUID
    org_name: str
    period_code: str
    bii_type: str | None
    status: str
    achievement_rate: Decimal
    key_results: tuple[CarryOverKeyResult, ...] = ()
