"""
okr_engines.grading -- Letter grades for key results.

Responsibility:
    Classify a key result into S/A/B/C/D by comparing its achievement rate
    against the key result's own grade thresholds, in the direction its
    metric runs.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Higher-is-better: achievement >= S -> S, >= A -> A, >= B -> B,
      >= C -> C, otherwise D.
    - Lower-is-better (units or indicator types named in the policy, e.g.
      cycle time in days, input indicators): achievement <= S -> S, and so on.
    - A key result with target_value <= 0 has no defined achievement and is
      graded D in either direction.
    - Missing or partial thresholds fall back to the policy defaults for the
      metric's direction, grade by grade.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from okr_engines.achievement import ZERO, KeyResultInput

GRADES: tuple[str, ...] = ("S", "A", "B", "C", "D")
_RANKED: tuple[str, ...] = GRADES[:-1]

DEFAULT_CRITERIA: dict[str, Decimal] = {
    "S": Decimal("120"),
    "A": Decimal("110"),
    "B": Decimal("100"),
    "C": Decimal("90"),
    "D": Decimal("0"),
}

DEFAULT_LOWER_IS_BETTER_CRITERIA: dict[str, Decimal] = {
    "S": Decimal("80"),
    "A": Decimal("90"),
    "B": Decimal("100"),
    "C": Decimal("110"),
    "D": Decimal("999999"),
}


@dataclass(frozen=True)
class GradingPolicy:
    """Which metrics run lower-is-better, and default thresholds."""

    lower_is_better_units: frozenset[str] = frozenset({"일", "days", "day"})
    lower_is_better_indicator_types: frozenset[str] = frozenset({"투입", "input"})
    default_criteria: Mapping[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_CRITERIA)
    )
    default_lower_is_better_criteria: Mapping[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_LOWER_IS_BETTER_CRITERIA)
    )


def empty_grade_distribution() -> dict[str, int]:
    return {grade: 0 for grade in GRADES}


def is_lower_better(kr: KeyResultInput, policy: GradingPolicy) -> bool:
    return (
        kr.unit in policy.lower_is_better_units
        or (kr.indicator_type is not None and kr.indicator_type in policy.lower_is_better_indicator_types)
    )


def _thresholds(
    criteria: Mapping[str, Any] | None,
    defaults: Mapping[str, Decimal],
) -> dict[str, Decimal]:
    merged = {grade: Decimal(str(defaults[grade])) for grade in _RANKED}
    for grade in _RANKED:
        if criteria and criteria.get(grade) is not None:
            merged[grade] = Decimal(str(criteria[grade]))
    return merged


def grade_key_result(
    kr: KeyResultInput,
    achievement_rate: Decimal,
    policy: GradingPolicy,
) -> str:
    """
    Letter grade of one key result.

    Args:
        kr: The key result (supplies unit, indicator type and thresholds).
        achievement_rate: Its achievement in percent.
        policy: Direction rules and default thresholds.

    Returns:
        One of "S", "A", "B", "C", "D".
    """
    if kr.target_value <= ZERO:
        return "D"

    if is_lower_better(kr, policy):
        thresholds = _thresholds(kr.grade_criteria, policy.default_lower_is_better_criteria)
        for grade in _RANKED:
            if achievement_rate <= thresholds[grade]:
                return grade
        return "D"

    thresholds = _thresholds(kr.grade_criteria, policy.default_criteria)
    for grade in _RANKED:
        if achievement_rate >= thresholds[grade]:
            return grade
    return "D"
