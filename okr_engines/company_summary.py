"""
okr_engines.company_summary -- Company-wide reduction of one period.

Responsibility:
    Reduce every organization snapshot of one period into the company
    summary: totals, company average achievement, ranked top and bottom
    performers, and summed distributions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Ranking and the company average use each organization's weighted
      achievement rate.
    - Organizations without objectives are counted in total_orgs but are
      excluded from the average and from both rankings.
    - Ties rank by organization name, then id, so output is deterministic.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from okr_engines.achievement import ZERO, quantize_rate
from okr_engines.rollup import merge_counts
from okr_engines.tracer import traced_engine


@dataclass(frozen=True)
class OrgFigures:
    org_id: str
    org_name: str
    total_objectives: int
    total_key_results: int
    weighted_achievement_rate: Decimal
    grade_distribution: Mapping[str, int] = field(default_factory=dict)
    bii_distribution: Mapping[str, int] = field(default_factory=dict)
    perspective_distribution: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CompanyFigures:
    total_orgs: int
    total_objectives: int
    total_key_results: int
    company_avg_achievement: Decimal
    top_performers: tuple[dict[str, Any], ...]
    low_performers: tuple[dict[str, Any], ...]
    grade_distribution: dict[str, int]
    bii_distribution: dict[str, int]
    perspective_distribution: dict[str, int]


def _performer(org: OrgFigures) -> dict[str, Any]:
    return {
        "org_id": org.org_id,
        "org_name": org.org_name,
        "rate": str(org.weighted_achievement_rate),
    }


@traced_engine("company_summary", "1.0", fingerprint_fields=("orgs", "ranking_size"))
def summarize_company(*, orgs: Sequence[OrgFigures], ranking_size: int = 5) -> CompanyFigures:
    """
    Company-wide figures for one period.

    Args:
        orgs: One entry per organization snapshot of the period.
        ranking_size: N for top-N and bottom-N.

    Raises:
        ValueError: if ranking_size is negative.
    """
    if ranking_size < 0:
        raise ValueError(f"ranking_size must be >= 0, got {ranking_size}")

    ranked = [o for o in orgs if o.total_objectives > 0]
    if ranked:
        avg = quantize_rate(
            sum((o.weighted_achievement_rate for o in ranked), ZERO) / Decimal(len(ranked))
        )
    else:
        avg = ZERO.quantize(Decimal("0.01"))

    by_name = sorted(ranked, key=lambda o: (o.org_name, o.org_id))
    top = sorted(by_name, key=lambda o: o.weighted_achievement_rate, reverse=True)
    low = sorted(by_name, key=lambda o: o.weighted_achievement_rate)

    return CompanyFigures(
        total_orgs=len(orgs),
        total_objectives=sum(o.total_objectives for o in orgs),
        total_key_results=sum(o.total_key_results for o in orgs),
        company_avg_achievement=avg,
        top_performers=tuple(_performer(o) for o in top[:ranking_size]),
        low_performers=tuple(_performer(o) for o in low[:ranking_size]),
        grade_distribution=merge_counts([o.grade_distribution for o in orgs]),
        bii_distribution=merge_counts([o.bii_distribution for o in orgs]),
        perspective_distribution=merge_counts([o.perspective_distribution for o in orgs]),
    )
