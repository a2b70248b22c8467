"""Services for the OKR period kernel (write side)."""

from okr_kernel.services.close_log_service import CloseLogService
from okr_kernel.services.continuity_service import ContinuityService
from okr_kernel.services.period_service import PeriodService
from okr_kernel.services.transition_service import (
    CloseRole,
    CloseRoleResolver,
    DefaultCloseRoleResolver,
    IncompleteItemsSource,
    TransitionService,
)

__all__ = [
    "CloseLogService",
    "CloseRole",
    "CloseRoleResolver",
    "ContinuityService",
    "DefaultCloseRoleResolver",
    "IncompleteItemsSource",
    "PeriodService",
    "TransitionService",
]
