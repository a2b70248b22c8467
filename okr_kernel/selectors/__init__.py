"""Selectors for the OKR period kernel (read side)."""

from okr_kernel.selectors.okr_selector import OkrSelector
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_kernel.selectors.snapshot_selector import SnapshotSelector

__all__ = [
    "OkrSelector",
    "PeriodSelector",
    "SnapshotSelector",
]
