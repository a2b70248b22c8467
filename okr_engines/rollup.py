"""
okr_engines.rollup -- Combine child-period snapshots into a parent figure.

Responsibility:
    For one organization, merge the snapshot figures of its direct child
    periods (quarters into a half, halves into a year) without touching live
    data.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by SnapshotService
    when a non-leaf period closes.

Invariants enforced:
    - Objective, key result and check-in counts are summed.
    - Achievement rates are averaged weighted by each child's objective
      count, so a light quarter cannot skew a heavy one.  Children with no
      objectives carry no weight; all-empty yields 0.
    - Grade, BII, perspective and status distributions merge by addition.
    - degraded_sources lists every force-closed child, plus whatever its
      own snapshot already listed, so a year still names the quarters that
      were forced.  Child order, no duplicates.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from okr_engines.achievement import ZERO, quantize_rate
from okr_engines.tracer import traced_engine


@dataclass(frozen=True)
class ChildFigures:
    """The stored aggregates of one child snapshot for one organization."""

    snapshot_id: str
    period_code: str
    total_objectives: int
    total_key_results: int
    total_check_ins: int
    avg_achievement_rate: Decimal
    weighted_achievement_rate: Decimal
    grade_distribution: Mapping[str, int] = field(default_factory=dict)
    bii_distribution: Mapping[str, int] = field(default_factory=dict)
    perspective_distribution: Mapping[str, int] = field(default_factory=dict)
    status_summary: Mapping[str, int] = field(default_factory=dict)
    weight_anomalies: tuple[str, ...] = ()
    force_closed: bool = False
    degraded_sources: tuple[str, ...] = ()


@dataclass(frozen=True)
class RollupFigures:
    total_objectives: int
    total_key_results: int
    total_check_ins: int
    avg_achievement_rate: Decimal
    weighted_achievement_rate: Decimal
    grade_distribution: dict[str, int]
    bii_distribution: dict[str, int]
    perspective_distribution: dict[str, int]
    status_summary: dict[str, int]
    weight_anomalies: tuple[str, ...]
    source_snapshot_ids: tuple[str, ...]
    degraded_sources: tuple[str, ...]


def merge_counts(distributions: Sequence[Mapping[str, int]]) -> dict[str, int]:
    """Key-wise sum; keys keep first-seen order."""
    merged: Counter[str] = Counter()
    order: list[str] = []
    for dist in distributions:
        for key, count in dist.items():
            if key not in merged:
                order.append(key)
            merged[key] += int(count)
    return {key: merged[key] for key in order}


def _objective_weighted_mean(
    children: Sequence[ChildFigures],
    rate_of,
) -> Decimal:
    total = sum(c.total_objectives for c in children)
    if total == 0:
        return ZERO
    numerator = sum((rate_of(c) * Decimal(c.total_objectives) for c in children), ZERO)
    return quantize_rate(numerator / Decimal(total))


def _degraded_sources(children: Sequence[ChildFigures]) -> tuple[str, ...]:
    sources: list[str] = []
    for child in children:
        for code in child.degraded_sources:
            if code not in sources:
                sources.append(code)
        if child.force_closed and child.period_code not in sources:
            sources.append(child.period_code)
    return tuple(sources)


@traced_engine("rollup", "1.0", fingerprint_fields=("children",))
def rollup_children(*, children: Sequence[ChildFigures]) -> RollupFigures:
    """
    Merge child snapshot figures for one organization.

    Preconditions:
        children belong to the same organization and to distinct direct
        child periods of one parent, in period order.
    """
    return RollupFigures(
        total_objectives=sum(c.total_objectives for c in children),
        total_key_results=sum(c.total_key_results for c in children),
        total_check_ins=sum(c.total_check_ins for c in children),
        avg_achievement_rate=_objective_weighted_mean(
            children, lambda c: c.avg_achievement_rate
        ),
        weighted_achievement_rate=_objective_weighted_mean(
            children, lambda c: c.weighted_achievement_rate
        ),
        grade_distribution=merge_counts([c.grade_distribution for c in children]),
        bii_distribution=merge_counts([c.bii_distribution for c in children]),
        perspective_distribution=merge_counts([c.perspective_distribution for c in children]),
        status_summary=merge_counts([c.status_summary for c in children]),
        weight_anomalies=tuple(a for c in children for a in c.weight_anomalies),
        source_snapshot_ids=tuple(c.snapshot_id for c in children),
        degraded_sources=_degraded_sources(children),
    )
