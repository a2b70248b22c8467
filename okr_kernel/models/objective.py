"""
Module: okr_kernel.models.objective
Responsibility: ORM persistence for objectives, key results and check-ins
    as authored by organizations during a period.
Architecture position: Kernel > Models.  May import from db/base.py only.

These rows are live, mutable data owned by the authoring workflow.  The
lifecycle engine reads them to detect incompleteness and to capture leaf
snapshots; it never writes them.

Conventions:
    - Objective.period_code and CheckIn.period_code hold the fiscal period
      code ("2025-Q1") the row belongs to.
    - KeyResult.weight is a percentage; weights of one objective are
      expected to total 100 but nothing here enforces it.
    - KeyResult.grade_criteria maps letter grades to thresholds on the
      key result's own unit, e.g. {"S": 120, "A": 100, "B": 80, "C": 60, "D": 0}.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from okr_kernel.db.base import TrackedBase, UUIDString


class BiiType(str, Enum):
    """Build / Innovate / Improve classification."""

    BUILD = "Build"
    INNOVATE = "Innovate"
    IMPROVE = "Improve"


class ObjectiveStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    AGREED = "agreed"
    ACTIVE = "active"
    REVIEWING = "reviewing"
    COMPLETED = "completed"


class Objective(TrackedBase):
    """An organization's objective for one period."""

    __tablename__ = "objectives"

    __table_args__ = (
        Index("idx_objective_org_period", "org_id", "period_code"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)

    bii_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ObjectiveStatus.DRAFT.value,
        nullable=False,
    )

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    key_results: Mapped[list["KeyResult"]] = relationship(
        back_populates="objective",
        order_by="KeyResult.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Objective {self.name} [{self.period_code}]>"


class KeyResult(TrackedBase):
    """A measurable key result under an objective."""

    __tablename__ = "key_results"

    __table_args__ = (
        Index("idx_key_result_objective", "objective_id"),
        Index("idx_key_result_org", "org_id"),
    )

    objective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("objectives.id"),
        nullable=False,
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)

    unit: Mapped[str] = mapped_column(String(20), default="%", nullable=False)

    weight: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    target_value: Mapped[Decimal] = mapped_column(nullable=False)

    current_value: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    bii_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # e.g. "financial", "customer", "process", "learning"
    perspective: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # e.g. "outcome", "input"
    indicator_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    grade_criteria: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    objective: Mapped["Objective"] = relationship(back_populates="key_results")

    def __repr__(self) -> str:
        return f"<KeyResult {self.name}: {self.current_value}/{self.target_value}>"


class CheckIn(TrackedBase):
    """A recorded progress value for a key result."""

    __tablename__ = "check_ins"

    __table_args__ = (
        Index("idx_check_in_kr_period", "kr_id", "period_code"),
    )

    kr_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("key_results.id"),
        nullable=False,
    )

    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    value: Mapped[Decimal] = mapped_column(nullable=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    checked_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    checked_at: Mapped[datetime] = mapped_column(nullable=False)
