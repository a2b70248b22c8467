"""Persistence models for the OKR period kernel."""

from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus, PeriodType
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.models.objective import (
    BiiType,
    CheckIn,
    KeyResult,
    Objective,
    ObjectiveStatus,
)
from okr_kernel.models.objective_continuity import ContinuityType, ObjectiveContinuity
from okr_kernel.models.organization import GoalSet, GoalSetStatus, Organization
from okr_kernel.models.period_close_log import PeriodCloseLog
from okr_kernel.models.period_snapshot import (
    CaptureKind,
    CompanyPeriodSummary,
    PeriodSnapshot,
)

__all__ = [
    "FiscalPeriod",
    "PeriodStatus",
    "PeriodType",
    "Organization",
    "GoalSet",
    "GoalSetStatus",
    "Objective",
    "ObjectiveStatus",
    "KeyResult",
    "CheckIn",
    "BiiType",
    "PeriodSnapshot",
    "CompanyPeriodSummary",
    "CaptureKind",
    "ObjectiveContinuity",
    "ContinuityType",
    "PeriodCloseLog",
    "CloseLogAction",
]
