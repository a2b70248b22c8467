"""
Module: okr_kernel.models.period_snapshot
Responsibility: ORM persistence for immutable per-organization period
    snapshots and the company-wide summary derived from them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one PeriodSnapshot per (period_id, organization_id)
      (uq_period_snapshot_period_org).
    - At most one CompanyPeriodSummary per period (uq_company_summary_period).
    - Both are immutable from creation (db/immutability.py).

Failure modes:
    - IntegrityError on a second snapshot for the same pair; SnapshotService
      checks first and raises SnapshotAlreadyExistsError.
    - ImmutabilityViolationError on UPDATE/DELETE.

Audit relevance:
    Snapshot payloads are read back long after the live data has changed.
    They are stored as versioned tagged records (domain/snapshot_records.py)
    and carry the forced-closure provenance of the period they describe.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from okr_kernel.db.base import TrackedBase, UUIDString


class CaptureKind(str, Enum):
    """How a snapshot was produced."""

    CAPTURE = "capture"  # leaf: copied from live data
    ROLLUP = "rollup"  # non-leaf: combined from child snapshots


class PeriodSnapshot(TrackedBase):
    """
    Point-in-time capture of one organization's performance in one period.

    Guarantees:
        - Counts and rates are precomputed; readers never recompute them.
        - objectives/key_results/check_ins hold lists of tagged record
          payloads with a schema_version each.
        - created_by_id is the capturing actor.
    """

    __tablename__ = "period_snapshots"

    __table_args__ = (
        UniqueConstraint("period_id", "organization_id", name="uq_period_snapshot_period_org"),
        Index("idx_period_snapshot_org", "organization_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    # Denormalized for reporting without a join
    organization_name: Mapped[str] = mapped_column(String(200), nullable=False)

    capture_kind: Mapped[str] = mapped_column(String(10), nullable=False)

    captured_at: Mapped[datetime] = mapped_column(nullable=False)

    objectives_snapshot: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    key_results_snapshot: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    check_ins_snapshot: Mapped[list[Any]] = mapped_column(JSON, nullable=False)

    total_objectives: Mapped[int] = mapped_column(Integer, nullable=False)
    total_key_results: Mapped[int] = mapped_column(Integer, nullable=False)
    total_check_ins: Mapped[int] = mapped_column(Integer, nullable=False)

    # Simple mean of objective achievement
    avg_achievement_rate: Mapped[Decimal] = mapped_column(nullable=False)

    # Mean of weight-normalized objective achievement
    weighted_achievement_rate: Mapped[Decimal] = mapped_column(nullable=False)

    grade_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    bii_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    perspective_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status_summary: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Objective ids whose key result weights do not total 100
    weight_anomalies: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Rollups only: child snapshot ids combined into this one
    source_snapshot_ids: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Forced-closure provenance of this period
    force_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    force_close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    incomplete_items: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Rollups only: child period codes that were force-closed
    degraded_sources: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<PeriodSnapshot period={self.period_id} org={self.organization_name}>"


class CompanyPeriodSummary(TrackedBase):
    """Company-wide reduction over every PeriodSnapshot of one period."""

    __tablename__ = "company_period_summaries"

    __table_args__ = (
        UniqueConstraint("period_id", name="uq_company_summary_period"),
        Index("idx_company_summary_company", "company_id"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    computed_at: Mapped[datetime] = mapped_column(nullable=False)

    total_orgs: Mapped[int] = mapped_column(Integer, nullable=False)
    total_objectives: Mapped[int] = mapped_column(Integer, nullable=False)
    total_key_results: Mapped[int] = mapped_column(Integer, nullable=False)

    company_avg_achievement: Mapped[Decimal] = mapped_column(nullable=False)

    # [{"org_id", "org_name", "rate"}, ...] in rank order
    top_performers: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    low_performers: Mapped[list[Any]] = mapped_column(JSON, nullable=False)

    grade_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    bii_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    perspective_distribution: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<CompanyPeriodSummary period={self.period_id} orgs={self.total_orgs}>"
