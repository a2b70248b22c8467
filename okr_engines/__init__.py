"""
Module: okr_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: achievement, grading, per-organization performance,
    child-period rollup, and the company-wide summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import okr_kernel.logging_config and sibling engine modules.
    MUST NOT import okr_services or touch a database session.

Invariants enforced:
    - Purity: engines never read the clock; services pass everything in.
    - Decimal-only arithmetic; floats are never used for rates.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Aggregating entry points are traced via ``@traced_engine`` (see
    ``okr_engines.tracer``), emitting OKR_ENGINE_TRACE records with an input
    fingerprint.
"""

from okr_engines.achievement import (
    KeyResultInput,
    ObjectiveAchievement,
    ObjectiveInput,
    carry_over_kr_rate,
    carry_over_rate,
    kr_achievement,
    objective_achievement,
    quantize_rate,
)
from okr_engines.company_summary import CompanyFigures, OrgFigures, summarize_company
from okr_engines.grading import (
    GRADES,
    GradingPolicy,
    empty_grade_distribution,
    grade_key_result,
    is_lower_better,
)
from okr_engines.org_performance import (
    BII_TYPES,
    KeyResultScore,
    OrgPerformance,
    compute_org_performance,
)
from okr_engines.rollup import ChildFigures, RollupFigures, merge_counts, rollup_children

__all__ = [
    "KeyResultInput",
    "ObjectiveInput",
    "ObjectiveAchievement",
    "kr_achievement",
    "objective_achievement",
    "carry_over_rate",
    "carry_over_kr_rate",
    "quantize_rate",
    "GRADES",
    "GradingPolicy",
    "grade_key_result",
    "is_lower_better",
    "empty_grade_distribution",
    "BII_TYPES",
    "KeyResultScore",
    "OrgPerformance",
    "compute_org_performance",
    "ChildFigures",
    "RollupFigures",
    "rollup_children",
    "merge_counts",
    "OrgFigures",
    "CompanyFigures",
    "summarize_company",
]
