"""
okr_engines.org_performance -- One organization's figures for a leaf capture.

Responsibility:
    Reduce an organization's objectives and key results for one period into
    the precomputed aggregates stored on its PeriodSnapshot: counts, simple
    and weighted average achievement, grade / BII / perspective
    distributions, objective status summary, and weight anomalies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by SnapshotService
    during leaf capture with inputs it built from live rows.

Invariants enforced:
    - Organization rates are simple means over its objectives; an objective
      without key results contributes 0 to both means.
    - Grade, BII and perspective distributions count key results.  A key
      result without a BII type inherits its objective's.
    - Deterministic: identical inputs always yield identical outputs.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from okr_engines.achievement import (
    ZERO,
    ObjectiveAchievement,
    ObjectiveInput,
    kr_achievement,
    objective_achievement,
    quantize_rate,
)
from okr_engines.grading import GradingPolicy, empty_grade_distribution, grade_key_result
from okr_engines.tracer import traced_engine

BII_TYPES: tuple[str, ...] = ("Build", "Innovate", "Improve")
UNCLASSIFIED = "Unclassified"


def empty_bii_distribution() -> dict[str, int]:
    return {bii: 0 for bii in BII_TYPES}


@dataclass(frozen=True)
class KeyResultScore:
    kr_id: UUID
    achievement_rate: Decimal
    grade: str


@dataclass(frozen=True)
class OrgPerformance:
    """Precomputed aggregates for one organization in one period."""

    total_objectives: int
    total_key_results: int
    avg_achievement_rate: Decimal
    weighted_achievement_rate: Decimal
    grade_distribution: dict[str, int]
    bii_distribution: dict[str, int]
    perspective_distribution: dict[str, int]
    status_summary: dict[str, int]
    weight_anomalies: tuple[str, ...]
    objectives: tuple[ObjectiveAchievement, ...]
    key_results: tuple[KeyResultScore, ...]

    @property
    def is_zero_achievement(self) -> bool:
        """Has key results and its headline (weighted) achievement is exactly zero."""
        return self.total_key_results > 0 and self.weighted_achievement_rate == ZERO


def _mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / Decimal(len(values))


@traced_engine("org_performance", "1.0", fingerprint_fields=("objectives",))
def compute_org_performance(
    *,
    objectives: Sequence[ObjectiveInput],
    policy: GradingPolicy,
) -> OrgPerformance:
    """
    Aggregate one organization's objectives.

    Args:
        objectives: The organization's objectives for the period, each with
            its key results.
        policy: Grading direction rules and default thresholds.

    Returns:
        OrgPerformance with every distribution key present (zero counts
        included for S-D and Build/Innovate/Improve).
    """
    grade_dist = empty_grade_distribution()
    bii_dist = empty_bii_distribution()
    perspective_dist: Counter[str] = Counter()
    status_summary: Counter[str] = Counter()

    objective_results: list[ObjectiveAchievement] = []
    scores: list[KeyResultScore] = []

    for objective in objectives:
        status_summary[objective.status] += 1
        objective_results.append(objective_achievement(objective))

        for kr in objective.key_results:
            rate = kr_achievement(kr.current_value, kr.target_value)
            grade = grade_key_result(kr, rate, policy)
            scores.append(KeyResultScore(kr_id=kr.kr_id, achievement_rate=rate, grade=grade))
            grade_dist[grade] += 1

            bii = kr.bii_type or objective.bii_type
            key = bii if bii in BII_TYPES else UNCLASSIFIED
            bii_dist[key] = bii_dist.get(key, 0) + 1

            perspective_dist[kr.perspective or "unspecified"] += 1

    return OrgPerformance(
        total_objectives=len(objective_results),
        total_key_results=len(scores),
        avg_achievement_rate=quantize_rate(_mean([o.simple_rate for o in objective_results])),
        weighted_achievement_rate=quantize_rate(
            _mean([o.weighted_rate for o in objective_results])
        ),
        grade_distribution=grade_dist,
        bii_distribution=bii_dist,
        perspective_distribution=dict(sorted(perspective_dist.items())),
        status_summary=dict(sorted(status_summary.items())),
        weight_anomalies=tuple(
            str(o.objective_id) for o in objective_results if o.weight_anomaly
        ),
        objectives=tuple(objective_results),
        key_results=tuple(scores),
    )
