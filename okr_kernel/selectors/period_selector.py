"""
Module: okr_kernel.selectors.period_selector
Responsibility: Read-only queries over the fiscal period hierarchy: lookups
    by id and code, the two-level year tree, filtered listings, and the
    child readiness gate used before a non-leaf period may close.
Architecture position: Kernel > Selectors.  May import from db/, models/, domain/.

Invariants enforced:
    - child_periods_status() is the single aggregation gate: can_aggregate
      is True iff every direct child is closed or archived.
    - Hierarchy and listing queries order children by starts_at so callers
      see the fiscal calendar order.

Failure modes:
    - PeriodNotFoundError from the ``get_*`` and ``*_for_update`` variants.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from okr_kernel.domain.dtos import ChildPeriodsStatus, FiscalPeriodInfo
from okr_kernel.domain.lifecycle import PeriodStatus, PeriodType
from okr_kernel.exceptions import PeriodNotFoundError
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.selectors.base import BaseSelector

_CLOSED_STATUSES = (PeriodStatus.CLOSED.value, PeriodStatus.ARCHIVED.value)


class PeriodSelector(BaseSelector[FiscalPeriod]):
    """
    Selector for fiscal period queries.

    Returns FiscalPeriodInfo / ChildPeriodsStatus DTOs.  The ``*_model``
    and ``*_for_update`` helpers return ORM rows and exist only for the
    service layer, which needs the mapped instance to write through.
    """

    # =========================================================================
    # Single lookups
    # =========================================================================

    def get_model(self, period_id: UUID) -> FiscalPeriod:
        period = self.session.get(FiscalPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def get_for_update(self, period_id: UUID) -> FiscalPeriod:
        """
        Load a period with a row lock (SELECT ... FOR UPDATE).

        SQLite ignores FOR UPDATE; the version column still catches a
        concurrent writer at flush time.
        """
        period = self.session.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def get(self, period_id: UUID) -> FiscalPeriodInfo:
        return FiscalPeriodInfo.from_model(self.get_model(period_id))

    def get_by_code(self, company_id: UUID, period_code: str) -> FiscalPeriodInfo | None:
        period = self._model_by_code(company_id, period_code)
        return FiscalPeriodInfo.from_model(period) if period else None

    def _model_by_code(self, company_id: UUID, period_code: str) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.period_code == period_code,
            )
        ).scalar_one_or_none()

    def year_exists(self, company_id: UUID, year: int) -> bool:
        return self._model_by_code(company_id, str(year)) is not None

    # =========================================================================
    # Hierarchy
    # =========================================================================

    def get_hierarchy(self, company_id: UUID, year: int) -> FiscalPeriodInfo | None:
        """
        The year period with halves, and quarters under each half.

        Returns None when the company has no such fiscal year.
        """
        year_period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.period_type == PeriodType.YEAR.value,
                FiscalPeriod.period_code == str(year),
            )
            .options(selectinload(FiscalPeriod.children).selectinload(FiscalPeriod.children))
        ).scalar_one_or_none()
        if year_period is None:
            return None
        return FiscalPeriodInfo.from_model(year_period, depth=2)

    def child_models(self, period_id: UUID) -> list[FiscalPeriod]:
        return list(
            self.session.execute(
                select(FiscalPeriod)
                .where(FiscalPeriod.parent_period_id == period_id)
                .order_by(FiscalPeriod.starts_at)
            ).scalars()
        )

    def is_leaf(self, period_id: UUID) -> bool:
        count = self.session.execute(
            select(func.count())
            .select_from(FiscalPeriod)
            .where(FiscalPeriod.parent_period_id == period_id)
        ).scalar_one()
        return count == 0

    def child_periods_status(self, period_id: UUID) -> ChildPeriodsStatus:
        """
        Readiness of a period's direct children for aggregation.

        Raises:
            PeriodNotFoundError: if the period does not exist.
        """
        period = self.get_model(period_id)
        children = self.child_models(period_id)
        closed = [c for c in children if c.is_closed]
        blocking = tuple((c.period_code, c.status) for c in children if not c.is_closed)
        return ChildPeriodsStatus(
            period_id=period.id,
            period_code=period.period_code,
            closed_count=len(closed),
            total_count=len(children),
            can_aggregate=len(closed) == len(children),
            blocking_children=blocking,
        )

    def leaf_descendant_codes(self, period_id: UUID) -> list[str]:
        """
        Codes of the leaf periods at or below ``period_id``, in calendar order.

        A leaf period returns its own code.
        """
        frontier = [self.get_model(period_id)]
        leaves: list[FiscalPeriod] = []
        while frontier:
            current = frontier.pop(0)
            children = self.child_models(current.id)
            if children:
                frontier.extend(children)
            else:
                leaves.append(current)
        return [p.period_code for p in sorted(leaves, key=lambda p: p.starts_at)]

    # =========================================================================
    # Listings
    # =========================================================================

    def list_periods(
        self,
        company_id: UUID,
        period_type: PeriodType | str | None = None,
        status: PeriodStatus | str | None = None,
    ) -> list[FiscalPeriodInfo]:
        query = select(FiscalPeriod).where(FiscalPeriod.company_id == company_id)
        if period_type is not None:
            query = query.where(FiscalPeriod.period_type == PeriodType(period_type).value)
        if status is not None:
            query = query.where(FiscalPeriod.status == PeriodStatus(status).value)
        query = query.order_by(FiscalPeriod.starts_at, FiscalPeriod.period_code)
        return [FiscalPeriodInfo.from_model(p) for p in self.session.execute(query).scalars()]

    def get_active(
        self,
        company_id: UUID,
        period_type: PeriodType | str = PeriodType.QUARTER,
    ) -> FiscalPeriodInfo | None:
        """The earliest active period of a type, or None."""
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.period_type == PeriodType(period_type).value,
                FiscalPeriod.status == PeriodStatus.ACTIVE.value,
            )
            .order_by(FiscalPeriod.starts_at)
            .limit(1)
        ).scalar_one_or_none()
        return FiscalPeriodInfo.from_model(period) if period else None

    def list_archived(self, company_id: UUID) -> list[FiscalPeriodInfo]:
        """Closed and archived periods, most recent end first."""
        periods = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.company_id == company_id,
                FiscalPeriod.status.in_(_CLOSED_STATUSES),
            )
            .order_by(FiscalPeriod.ends_at.desc(), FiscalPeriod.period_code)
        ).scalars()
        return [FiscalPeriodInfo.from_model(p) for p in periods]
