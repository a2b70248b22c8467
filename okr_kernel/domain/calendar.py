"""
Calendar -- Fiscal year layout.

Responsibility:
    Computes the codes, names and half-open UTC intervals of every period in
    one fiscal year: the year, its two halves, and four quarters, down to the
    configured operational unit.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumed by
    PeriodService.create_fiscal_year, which persists the layout as-is.

Invariants enforced:
    - Quarter N covers three calendar months starting at
      ``start_month + 3 * (N - 1)``; a fiscal year that starts after January
      runs into the next calendar year.
    - Halves are the exact union of two consecutive quarters and the year is
      the exact union of both halves (shared boundaries, no gaps).
    - Intervals are half-open [starts_at, ends_at).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from okr_kernel.domain.lifecycle import PERIOD_TYPE_DEPTH, PeriodType


@dataclass(frozen=True)
class PeriodSlot:
    """One period in a fiscal-year layout, before persistence."""

    period_type: PeriodType
    period_code: str
    period_name: str
    parent_code: str | None
    starts_at: datetime
    ends_at: datetime

    def contains(self, other: PeriodSlot) -> bool:
        return self.starts_at <= other.starts_at and other.ends_at <= self.ends_at


def period_code(year: int, period_type: PeriodType, index: int | None = None) -> str:
    """Stable machine key: "2025", "2025-H1", "2025-Q3"."""
    if period_type == PeriodType.YEAR:
        return f"{year}"
    if period_type == PeriodType.HALF:
        return f"{year}-H{index}"
    return f"{year}-Q{index}"


def period_name(year: int, period_type: PeriodType, index: int | None = None) -> str:
    if period_type == PeriodType.YEAR:
        return f"FY{year}"
    if period_type == PeriodType.HALF:
        return f"FY{year} H{index}"
    return f"FY{year} Q{index}"


def _month_start(year: int, month_offset: int, tz: timezone) -> datetime:
    """First instant of the month ``month_offset`` months after January of ``year``."""
    y = year + month_offset // 12
    m = month_offset % 12 + 1
    return datetime(y, m, 1, tzinfo=tz).astimezone(timezone.utc)


def build_fiscal_year(
    year: int,
    start_month: int = 1,
    timezone_offset_hours: int = 0,
    operational_unit: PeriodType = PeriodType.QUARTER,
) -> list[PeriodSlot]:
    """
    Lay out one fiscal year.

    Preconditions:
        1 <= start_month <= 12.
    Postconditions:
        Returns the year slot first, then for each half the half followed by
        its quarters (depth limited by ``operational_unit``).  Boundaries are
        local midnights at ``timezone_offset_hours`` expressed in UTC.

    Raises:
        ValueError: if start_month is out of range.
    """
    if not 1 <= start_month <= 12:
        raise ValueError(f"start_month must be 1..12, got {start_month}")

    tz = timezone(timedelta(hours=timezone_offset_hours))
    base = start_month - 1
    quarter_bounds = [
        (_month_start(year, base + 3 * q, tz), _month_start(year, base + 3 * (q + 1), tz))
        for q in range(4)
    ]
    depth = PERIOD_TYPE_DEPTH[operational_unit]

    year_code = period_code(year, PeriodType.YEAR)
    slots = [
        PeriodSlot(
            period_type=PeriodType.YEAR,
            period_code=year_code,
            period_name=period_name(year, PeriodType.YEAR),
            parent_code=None,
            starts_at=quarter_bounds[0][0],
            ends_at=quarter_bounds[3][1],
        )
    ]
    if depth < PERIOD_TYPE_DEPTH[PeriodType.HALF]:
        return slots

    for h in (1, 2):
        half_code = period_code(year, PeriodType.HALF, h)
        first_q = 2 * (h - 1)
        slots.append(
            PeriodSlot(
                period_type=PeriodType.HALF,
                period_code=half_code,
                period_name=period_name(year, PeriodType.HALF, h),
                parent_code=year_code,
                starts_at=quarter_bounds[first_q][0],
                ends_at=quarter_bounds[first_q + 1][1],
            )
        )
        if depth < PERIOD_TYPE_DEPTH[PeriodType.QUARTER]:
            continue
        for q in (first_q, first_q + 1):
            slots.append(
                PeriodSlot(
                    period_type=PeriodType.QUARTER,
                    period_code=period_code(year, PeriodType.QUARTER, q + 1),
                    period_name=period_name(year, PeriodType.QUARTER, q + 1),
                    parent_code=half_code,
                    starts_at=quarter_bounds[q][0],
                    ends_at=quarter_bounds[q][1],
                )
            )
    return slots
