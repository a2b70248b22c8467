"""
Shared mapping helpers for the lifecycle services.

Converts OKR ORM rows into engine value objects and engine results into
versioned snapshot records.
"""

from decimal import Decimal

from okr_engines.achievement import KeyResultInput, ObjectiveAchievement, ObjectiveInput
from okr_engines.org_performance import KeyResultScore
from okr_kernel.domain.snapshot_records import CheckInRecord, KeyResultRecord, ObjectiveRecord
from okr_kernel.models.objective import CheckIn, KeyResult, Objective


def kr_to_input(kr: KeyResult) -> KeyResultInput:
    """Convert ORM key result to engine value object."""
    return KeyResultInput(
        kr_id=kr.id,
        objective_id=kr.objective_id,
        name=kr.name,
        target_value=Decimal(kr.target_value),
        current_value=Decimal(kr.current_value or 0),
        weight=Decimal(kr.weight or 0),
        unit=kr.unit,
        bii_type=kr.bii_type,
        perspective=kr.perspective,
        indicator_type=kr.indicator_type,
        grade_criteria=kr.grade_criteria,
    )


def objective_to_input(objective: Objective) -> ObjectiveInput:
    """Convert ORM objective (with key results loaded) to engine value object."""
    return ObjectiveInput(
        objective_id=objective.id,
        name=objective.name,
        status=objective.status,
        bii_type=objective.bii_type,
        key_results=tuple(kr_to_input(kr) for kr in objective.key_results),
    )


def objective_record(objective: Objective, achievement: ObjectiveAchievement) -> ObjectiveRecord:
    return ObjectiveRecord(
        objective_id=objective.id,
        org_id=objective.org_id,
        name=objective.name,
        period_code=objective.period_code,
        status=objective.status,
        bii_type=objective.bii_type,
        kr_count=achievement.kr_count,
        achievement_rate=achievement.simple_rate,
        weighted_achievement_rate=achievement.weighted_rate,
        weight_total=achievement.weight_total,
        weight_anomaly=achievement.weight_anomaly,
    )


def key_result_record(kr: KeyResultInput, score: KeyResultScore) -> KeyResultRecord:
    return KeyResultRecord(
        kr_id=kr.kr_id,
        objective_id=kr.objective_id,
        name=kr.name,
        unit=kr.unit,
        weight=kr.weight,
        target_value=kr.target_value,
        current_value=kr.current_value,
        achievement_rate=score.achievement_rate,
        grade=score.grade,
        bii_type=kr.bii_type,
        perspective=kr.perspective,
        indicator_type=kr.indicator_type,
        grade_criteria=kr.grade_criteria,
    )


def check_in_record(check_in: CheckIn) -> CheckInRecord:
    return CheckInRecord(
        check_in_id=check_in.id,
        kr_id=check_in.kr_id,
        value=Decimal(check_in.value),
        comment=check_in.comment,
        checked_by_id=check_in.checked_by_id,
        checked_at=check_in.checked_at,
    )
