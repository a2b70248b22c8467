"""
PeriodService -- fiscal year creation and the period hierarchy.

Responsibility:
    Materializes a company's fiscal year (year, halves, quarters) as
    FiscalPeriod rows with contiguous, correctly nested intervals, and
    answers hierarchy questions for the layers above.

Architecture position:
    Kernel > Services -- imperative shell.
    Layout math is delegated to ``okr_kernel.domain.calendar``; this
    service only persists it and owns the duplicate-year check.

Invariants enforced:
    - One fiscal year per (company, year): a second attempt raises
      FiscalYearExistsError and writes nothing.
    - Every child interval lies within its parent's interval; quarters of a
      half are contiguous and union to the half.
    - New periods start as ``upcoming`` at version 1.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - FiscalYearExistsError: the year already exists, detected up front or
      via the (company_id, period_code) unique constraint at flush.
    - ValueError: fiscal_year_start_month outside 1..12.

Audit relevance:
    ``fiscal_year_created`` is logged with the company, year and the codes
    materialized.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from okr_kernel.domain.calendar import build_fiscal_year
from okr_kernel.domain.dtos import ChildPeriodsStatus, FiscalPeriodInfo
from okr_kernel.domain.lifecycle import PeriodStatus, PeriodType
from okr_kernel.exceptions import FiscalYearExistsError
from okr_kernel.logging_config import get_logger
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """
    Service for creating fiscal years and reading the period tree.

    Contract:
        create_fiscal_year() returns the year as a FiscalPeriodInfo with its
        children populated.  Read helpers delegate to PeriodSelector.

    Non-goals:
        - Does NOT change period status; see TransitionService.
        - Does NOT edit intervals after creation (ORM listeners block it).
    """

    def __init__(
        self,
        session: Session,
        start_month: int = 1,
        timezone_offset_hours: int = 0,
        operational_unit: PeriodType = PeriodType.QUARTER,
    ):
        super().__init__(session)
        self._start_month = start_month
        self._timezone_offset_hours = timezone_offset_hours
        self._operational_unit = PeriodType(operational_unit)
        self._selector = PeriodSelector(session)

    def create_fiscal_year(
        self,
        company_id: UUID,
        year: int,
        actor_id: UUID,
    ) -> FiscalPeriodInfo:
        """
        Create one fiscal year with its halves and quarters.

        Postconditions:
            - Exactly one ``year`` row, two ``half`` rows parented to it and
              (for a quarter operational unit) four ``quarter`` rows, two per
              half, all ``upcoming``.

        Raises:
            FiscalYearExistsError: If the company already has this year.
            ValueError: If the configured start month is invalid.
        """
        if self._selector.year_exists(company_id, year):
            logger.warning(
                "fiscal_year_exists",
                extra={"company_id": str(company_id), "year": year},
            )
            raise FiscalYearExistsError(str(company_id), year)

        slots = build_fiscal_year(
            year,
            start_month=self._start_month,
            timezone_offset_hours=self._timezone_offset_hours,
            operational_unit=self._operational_unit,
        )

        by_code: dict[str, FiscalPeriod] = {}
        for slot in slots:
            parent = by_code.get(slot.parent_code) if slot.parent_code else None
            period = FiscalPeriod(
                company_id=company_id,
                period_type=slot.period_type.value,
                period_code=slot.period_code,
                period_name=slot.period_name,
                parent=parent,
                starts_at=slot.starts_at,
                ends_at=slot.ends_at,
                status=PeriodStatus.UPCOMING.value,
                created_by_id=actor_id,
            )
            self.session.add(period)
            by_code[slot.period_code] = period

        try:
            self.session.flush()
        except IntegrityError as exc:
            logger.warning(
                "concurrent_fiscal_year_conflict",
                extra={"company_id": str(company_id), "year": year},
            )
            raise FiscalYearExistsError(str(company_id), year) from exc

        year_period = by_code[str(year)]
        logger.info(
            "fiscal_year_created",
            extra={
                "company_id": str(company_id),
                "year": year,
                "period_codes": [s.period_code for s in slots],
                "start_month": self._start_month,
                "operational_unit": self._operational_unit.value,
            },
        )
        return FiscalPeriodInfo.from_model(year_period, depth=2)

    def get_hierarchy(self, company_id: UUID, year: int) -> FiscalPeriodInfo | None:
        return self._selector.get_hierarchy(company_id, year)

    def check_child_periods_status(self, period_id: UUID) -> ChildPeriodsStatus:
        return self._selector.child_periods_status(period_id)
