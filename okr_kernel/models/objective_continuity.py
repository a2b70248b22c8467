"""
Module: okr_kernel.models.objective_continuity
Responsibility: ORM persistence for directed objective continuity edges
    across periods (carry-over, evolution, split, merge).
Architecture position: Kernel > Models.  May import from db/base.py only.

The table is a plain many-to-many edge list.  Several edges may share a
source (split) or a target (merge); only the exact (source, target) pair is
unique.  Edges are informational and constrain nothing else in the engine.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from okr_kernel.db.base import TrackedBase, UUIDString


class ContinuityType(str, Enum):
    CARRY_OVER = "carry_over"
    EVOLVED = "evolved"
    SPLIT = "split"
    MERGED = "merged"


class ObjectiveContinuity(TrackedBase):
    """One directed edge: source objective (earlier period) -> target objective."""

    __tablename__ = "objective_continuity"

    __table_args__ = (
        UniqueConstraint(
            "source_objective_id",
            "target_objective_id",
            name="uq_objective_continuity_pair",
        ),
        Index("idx_objective_continuity_target", "target_objective_id"),
    )

    source_objective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("objectives.id"),
        nullable=False,
    )

    target_objective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("objectives.id"),
        nullable=False,
    )

    source_period_code: Mapped[str] = mapped_column(String(20), nullable=False)
    target_period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    continuity_type: Mapped[str] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ObjectiveContinuity {self.source_objective_id} -> "
            f"{self.target_objective_id} ({self.continuity_type})>"
        )
