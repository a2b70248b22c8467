"""
LifecyclePolicy schema.

The typed, frozen form of one lifecycle policy file.  YAML is parsed into
these types by the loader; bridges turn them into engine and service
inputs.  Field defaults are the product defaults, so an empty file is a
valid policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

DEFAULT_APPROVED_STATUSES: tuple[str, ...] = ("approved", "finalized")

DEFAULT_HIGHER_THRESHOLDS: dict[str, Decimal] = {
    "S": Decimal("120"),
    "A": Decimal("110"),
    "B": Decimal("100"),
    "C": Decimal("90"),
    "D": Decimal("0"),
}

DEFAULT_LOWER_THRESHOLDS: dict[str, Decimal] = {
    "S": Decimal("80"),
    "A": Decimal("90"),
    "B": Decimal("100"),
    "C": Decimal("110"),
    "D": Decimal("999999"),
}


@dataclass(frozen=True)
class GradeThresholds:
    """Fallback achievement thresholds (percent) for one metric direction."""

    S: Decimal
    A: Decimal
    B: Decimal
    C: Decimal
    D: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {"S": self.S, "A": self.A, "B": self.B, "C": self.C, "D": self.D}


@dataclass(frozen=True)
class LifecyclePolicy:
    """Everything configurable about the period lifecycle."""

    name: str = "default"
    version: int = 1

    # Calendar
    fiscal_year_start_month: int = 1
    timezone_offset_hours: int = 0
    operational_unit: str = "quarter"

    # Incompleteness
    approved_goal_set_statuses: tuple[str, ...] = DEFAULT_APPROVED_STATUSES

    # Grading
    lower_is_better_units: tuple[str, ...] = ("일", "days", "day")
    lower_is_better_indicator_types: tuple[str, ...] = ("투입", "input")
    higher_is_better_thresholds: GradeThresholds = field(
        default_factory=lambda: GradeThresholds(**DEFAULT_HIGHER_THRESHOLDS)
    )
    lower_is_better_thresholds: GradeThresholds = field(
        default_factory=lambda: GradeThresholds(**DEFAULT_LOWER_THRESHOLDS)
    )

    # Snapshots and ranking
    ranking_size: int = 5
    snapshot_on_close: bool = True

    # Authority and retries
    archive_requires_admin: bool = True
    transition_retry_attempts: int = 3

    checksum: str = ""
