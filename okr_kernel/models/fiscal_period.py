"""
Module: okr_kernel.models.fiscal_period
Responsibility: ORM persistence for the fiscal period hierarchy and its
    lifecycle status -- controls when goals may be authored, run and closed.
Architecture position: Kernel > Models.  May import from db/base.py and domain/lifecycle.py.

Invariants enforced:
    - (company_id, period_code) is unique: a company has one "2025-Q1".
    - A child's [starts_at, ends_at) lies inside its parent's interval
      (materialized by PeriodService.create_fiscal_year, never edited).
    - status only changes along lifecycle edges (db/immutability.py) and
      only through TransitionService.
    - version is the optimistic concurrency token; a stale write raises
      StaleDataError, translated to ConcurrentModificationError.

Failure modes:
    - IntegrityError on a duplicate (company_id, period_code).
    - ImmutabilityViolationError on any change to an archived period or
      on DELETE.

Audit relevance:
    Closure and forced-closure metadata live on the row itself so that
    historical reports can always tell a clean close from a forced one.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from okr_kernel.db.base import TrackedBase, UUIDString
from okr_kernel.domain.lifecycle import PeriodStatus


class FiscalPeriod(TrackedBase):
    """
    A named span of time in a company's fiscal hierarchy.

    Contract:
        Leaf periods (the operational unit) are authored and closed
        directly.  Non-leaf periods are aggregation containers that close
        only after every child is closed or archived.

    Guarantees:
        - Interval is half-open: starts_at inclusive, ends_at exclusive.
        - force_* fields and incomplete_items are set only by a forced
          leaf closure and never cleared afterwards.

    Non-goals:
        - This model does NOT validate transitions; see TransitionService.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("company_id", "period_code", name="uq_fiscal_period_company_code"),
        Index("idx_fiscal_period_company_type", "company_id", "period_type"),
        Index("idx_fiscal_period_parent", "parent_period_id"),
        Index("idx_fiscal_period_status", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    period_type: Mapped[str] = mapped_column(String(10), nullable=False)

    # Stable machine key: "2025", "2025-H1", "2025-Q1"
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    period_name: Mapped[str] = mapped_column(String(100), nullable=False)

    parent_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=True,
    )

    starts_at: Mapped[datetime] = mapped_column(nullable=False)
    ends_at: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PeriodStatus.UPCOMING.value,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    close_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    force_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    force_close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    force_closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    force_closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Detector report captured verbatim at force time
    incomplete_items: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)

    parent: Mapped["FiscalPeriod | None"] = relationship(
        back_populates="children",
        remote_side="FiscalPeriod.id",
    )

    children: Mapped[list["FiscalPeriod"]] = relationship(
        back_populates="parent",
        order_by="FiscalPeriod.starts_at",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code}: {self.status}>"

    @property
    def status_enum(self) -> PeriodStatus:
        return PeriodStatus(self.status)

    @property
    def is_closed(self) -> bool:
        """Closed or archived."""
        return self.status in (PeriodStatus.CLOSED.value, PeriodStatus.ARCHIVED.value)
