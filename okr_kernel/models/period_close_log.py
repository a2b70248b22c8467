"""
Module: okr_kernel.models.period_close_log
Responsibility: ORM persistence for the append-only period lifecycle audit
    trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row per successful lifecycle action; a failed transition
      writes none because the row shares the transition's transaction.
    - (period_id, sequence) is unique and gap-free per period, giving a
      total order independent of clock resolution.
    - Rows are never updated or deleted (db/immutability.py).

Audit relevance:
    This table answers "who moved this period, when, and why" for every
    status change, including the full incomplete-items report behind each
    forced closure.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from okr_kernel.db.base import TrackedBase, UUIDString


class PeriodCloseLog(TrackedBase):
    """One lifecycle action on one period. created_by_id is the actor."""

    __tablename__ = "period_close_logs"

    __table_args__ = (
        UniqueConstraint("period_id", "sequence", name="uq_period_close_log_sequence"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # CloseLogAction value
    action: Mapped[str] = mapped_column(String(30), nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    performed_at: Mapped[datetime] = mapped_column(nullable=False)

    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<PeriodCloseLog #{self.sequence} {self.action} period={self.period_id}>"
