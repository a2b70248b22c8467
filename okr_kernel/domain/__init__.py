"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (the Clock abstraction is injected, never read ambiently)
- I/O

All domain objects are immutable and deterministic.
"""

from okr_kernel.domain.calendar import PeriodSlot, build_fiscal_year, period_code, period_name
from okr_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from okr_kernel.domain.dtos import (
    CarryOverCandidate,
    CarryOverKeyResult,
    ChildPeriodsStatus,
    CloseLogEntry,
    CompanySummaryInfo,
    ContinuityEdge,
    FiscalPeriodInfo,
    IncompleteItemsReport,
    KrWithoutCheckin,
    SnapshotInfo,
    SnapshotResult,
    TransitionOutcome,
    UnapprovedGoalSet,
    ZeroAchievementOrg,
)
from okr_kernel.domain.lifecycle import (
    CloseLogAction,
    PeriodAction,
    PeriodProgress,
    PeriodStatus,
    PeriodType,
    action_for_transition,
    available_actions,
    compute_progress,
    is_allowed_transition,
)
from okr_kernel.domain.snapshot_records import (
    CheckInRecord,
    KeyResultRecord,
    ObjectiveRecord,
    decode_record,
    encode_record,
)

__all__ = [
    # Calendar
    "PeriodSlot",
    "build_fiscal_year",
    "period_code",
    "period_name",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # DTOs
    "FiscalPeriodInfo",
    "ChildPeriodsStatus",
    "IncompleteItemsReport",
    "UnapprovedGoalSet",
    "KrWithoutCheckin",
    "ZeroAchievementOrg",
    "TransitionOutcome",
    "CloseLogEntry",
    "SnapshotInfo",
    "CompanySummaryInfo",
    "SnapshotResult",
    "ContinuityEdge",
    "CarryOverCandidate",
    "CarryOverKeyResult",
    # Lifecycle
    "PeriodType",
    "PeriodStatus",
    "CloseLogAction",
    "PeriodAction",
    "PeriodProgress",
    "is_allowed_transition",
    "action_for_transition",
    "available_actions",
    "compute_progress",
    # Snapshot records
    "ObjectiveRecord",
    "KeyResultRecord",
    "CheckInRecord",
    "encode_record",
    "decode_record",
]
