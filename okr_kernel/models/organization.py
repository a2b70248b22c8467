"""
Module: okr_kernel.models.organization
Responsibility: ORM persistence for the organization directory and each
    organization's per-period goal set (the approval envelope around its
    objectives).
Architecture position: Kernel > Models.  May import from db/base.py only.

Both tables are owned by upstream collaborators (the org-chart editor and
the approval inbox).  The lifecycle engine only reads them.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from okr_kernel.db.base import TrackedBase, UUIDString


class GoalSetStatus(str, Enum):
    """Approval status of an organization's goal set for one period."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    REJECTED = "rejected"
    APPROVED = "approved"
    FINALIZED = "finalized"


class Organization(TrackedBase):
    """A node in a company's organization chart."""

    __tablename__ = "organizations"

    __table_args__ = (
        Index("idx_organization_company", "company_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # e.g. "company", "division", "team"
    level: Mapped[str] = mapped_column(String(30), nullable=False)

    parent_org_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.level})>"


class GoalSet(TrackedBase):
    """
    An organization's goal set for one period.

    A set may be resubmitted; the row with the highest version is the
    current one.
    """

    __tablename__ = "goal_sets"

    __table_args__ = (
        UniqueConstraint("org_id", "period_code", "version", name="uq_goal_set_org_period_version"),
        Index("idx_goal_set_period", "period_code"),
    )

    org_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("organizations.id"),
        nullable=False,
    )

    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(30),
        default=GoalSetStatus.DRAFT.value,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return f"<GoalSet {self.org_id} {self.period_code} v{self.version}: {self.status}>"
