"""
okr_engines.achievement -- Key result and objective achievement rates.

Responsibility:
    Compute per-key-result achievement (current / target * 100), each
    objective's simple and weight-normalized achievement, and the unweighted
    carry-over rate shown when drafting the next period.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic; rates are quantized to 0.01 with ROUND_HALF_UP.
    - target_value <= 0 yields 0 achievement (never a division error); the
      key result still counts in every denominator.
    - Achievement is not capped; over-delivery shows as > 100.
    - Weights are percentages expected to total 100 per objective.  A set
      that does not is normalized by its actual total and flagged
      (weight_anomaly), never rewritten.  A zero total falls back to the
      simple mean.
    - The carry-over rate is the unweighted mean rounded to whole percent.
      It is a different figure from the snapshot's weighted rate by intent.

Failure modes:
    - None; empty inputs produce zero rates.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from okr_kernel.logging_config import get_logger

logger = get_logger("engines.achievement")

HUNDRED = Decimal("100")
ZERO = Decimal("0")
RATE_QUANTUM = Decimal("0.01")
WHOLE_PERCENT = Decimal("1")


def quantize_rate(value: Decimal, quantum: Decimal = RATE_QUANTUM) -> Decimal:
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class KeyResultInput:
    """Engine view of a key result. Built by the service layer from live rows."""

    kr_id: UUID
    objective_id: UUID
    name: str
    target_value: Decimal
    current_value: Decimal
    weight: Decimal = ZERO
    unit: str = "%"
    bii_type: str | None = None
    perspective: str | None = None
    indicator_type: str | None = None
    grade_criteria: dict[str, Any] | None = None


@dataclass(frozen=True)
class ObjectiveInput:
    objective_id: UUID
    name: str
    status: str
    bii_type: str | None = None
    key_results: tuple[KeyResultInput, ...] = ()


@dataclass(frozen=True)
class ObjectiveAchievement:
    """Achievement figures for one objective."""

    objective_id: UUID
    kr_count: int
    simple_rate: Decimal
    weighted_rate: Decimal
    weight_total: Decimal
    weight_anomaly: bool


def raw_achievement(current_value: Decimal, target_value: Decimal) -> Decimal:
    """Unrounded current / target * 100; zero when target <= 0."""
    if target_value <= ZERO:
        return ZERO
    return Decimal(current_value) / Decimal(target_value) * HUNDRED


def kr_achievement(current_value: Decimal, target_value: Decimal) -> Decimal:
    """Key result achievement in percent, quantized to 0.01."""
    return quantize_rate(raw_achievement(current_value, target_value))


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / Decimal(len(values))


def objective_achievement(objective: ObjectiveInput) -> ObjectiveAchievement:
    """
    Simple and weight-normalized achievement of one objective.

    Postconditions:
        - simple_rate is the mean of key result achievements.
        - weighted_rate is sum(weight * achievement) / sum(weight), or the
          simple mean when the weights sum to zero.
        - weight_anomaly is True when the objective has key results whose
          weights do not total exactly 100.
    """
    krs = objective.key_results
    rates = [raw_achievement(kr.current_value, kr.target_value) for kr in krs]
    weight_total = sum((Decimal(kr.weight) for kr in krs), ZERO)

    simple = _mean(rates)
    if weight_total > ZERO:
        weighted = sum(
            (Decimal(kr.weight) * rate for kr, rate in zip(krs, rates)), ZERO
        ) / weight_total
    else:
        weighted = simple

    anomaly = bool(krs) and weight_total != HUNDRED
    if anomaly:
        logger.warning(
            "objective_weight_anomaly",
            extra={
                "objective_id": str(objective.objective_id),
                "weight_total": str(weight_total),
                "kr_count": len(krs),
            },
        )

    return ObjectiveAchievement(
        objective_id=objective.objective_id,
        kr_count=len(krs),
        simple_rate=quantize_rate(simple),
        weighted_rate=quantize_rate(weighted),
        weight_total=weight_total,
        weight_anomaly=anomaly,
    )


def carry_over_kr_rate(current_value: Decimal, target_value: Decimal) -> Decimal:
    """Key result rate shown next to carry-over candidates, whole percent."""
    return quantize_rate(raw_achievement(current_value, target_value), WHOLE_PERCENT)


def carry_over_rate(key_results: Sequence[tuple[Decimal, Decimal]]) -> Decimal:
    """
    Unweighted achievement of a prior-period objective for carry-over.

    Args:
        key_results: (current_value, target_value) pairs.

    Returns:
        Mean of the per-key-result ratios in whole percent; 0 with no
        key results.  Weights are deliberately ignored.
    """
    rates = [raw_achievement(current, target) for current, target in key_results]
    return quantize_rate(_mean(rates), WHOLE_PERCENT)
