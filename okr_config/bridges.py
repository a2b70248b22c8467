"""
Config -> Engine/Kernel Bridges.

Functions that convert a LifecyclePolicy into the inputs the engines and
kernel services take.  These live in okr_config (the producer) because
neither the kernel nor the engines may import okr_config.

Usage:
    from okr_config.bridges import build_grading_policy, operational_unit

    policy = get_active_config()
    grading = build_grading_policy(policy)
"""

from __future__ import annotations

from okr_config.schema import LifecyclePolicy
from okr_engines.grading import GradingPolicy
from okr_kernel.domain.lifecycle import PeriodType


def build_grading_policy(policy: LifecyclePolicy) -> GradingPolicy:
    return GradingPolicy(
        lower_is_better_units=frozenset(policy.lower_is_better_units),
        lower_is_better_indicator_types=frozenset(policy.lower_is_better_indicator_types),
        default_criteria=policy.higher_is_better_thresholds.as_dict(),
        default_lower_is_better_criteria=policy.lower_is_better_thresholds.as_dict(),
    )


def operational_unit(policy: LifecyclePolicy) -> PeriodType:
    return PeriodType(policy.operational_unit)


def approved_statuses(policy: LifecyclePolicy) -> frozenset[str]:
    return frozenset(policy.approved_goal_set_statuses)
