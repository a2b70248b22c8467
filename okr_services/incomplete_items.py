"""
okr_services.incomplete_items -- What is still incomplete in a period.

Responsibility:
    Read-only analysis of a period producing the IncompleteItemsReport:
    organizations whose current goal set is not approved, key results with
    no check-in for the period, and organizations whose computed achievement
    is exactly zero.

Architecture position:
    Services -- composes kernel selectors with the org_performance engine.
    Injected into TransitionService as its IncompleteItemsSource.

Invariants enforced:
    - No side effects: never adds, flushes or changes a row.  Safe to call
      repeatedly during an interactive close.
    - Scope: the period's own code plus the codes of its leaf descendants.
      An organization is in scope when it is active and has a goal set or
      objectives for one of those codes.
    - An in-scope organization with no goal set for a code is reported with
      status ``missing``.
    - "Zero achievement" uses the same weighted organization rate as the
      snapshot engine, so the report and the snapshot agree.

Audit relevance:
    The report this produces is persisted verbatim on a forced closure.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from okr_engines.grading import GradingPolicy
from okr_engines.org_performance import compute_org_performance
from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.dtos import (
    IncompleteItemsReport,
    KrWithoutCheckin,
    UnapprovedGoalSet,
    ZeroAchievementOrg,
)
from okr_kernel.logging_config import get_logger
from okr_kernel.models.objective import Objective
from okr_kernel.models.organization import GoalSet, GoalSetStatus, Organization
from okr_kernel.selectors.okr_selector import OkrSelector
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_services._okr_mapping import objective_to_input

logger = get_logger("services.incomplete_items")

MISSING_GOAL_SET = "missing"

DEFAULT_APPROVED_STATUSES: frozenset[str] = frozenset({
    GoalSetStatus.APPROVED.value,
    GoalSetStatus.FINALIZED.value,
})


class IncompleteItemsDetector:
    """Produces the incomplete-items report for a period.

    Contract:
        ``detect()`` returns a report; it never decides whether the report
        blocks anything (TransitionService does).

    Non-goals:
        - Does NOT persist the report.
        - Does NOT modify any data (read-only).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        approved_statuses: Iterable[str] | None = None,
        grading_policy: GradingPolicy | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._approved = frozenset(approved_statuses or DEFAULT_APPROVED_STATUSES)
        self._grading = grading_policy or GradingPolicy()
        self._periods = PeriodSelector(session)
        self._okrs = OkrSelector(session)

    def detect(self, period_id: UUID) -> IncompleteItemsReport:
        """Analyze one period.

        Raises:
            PeriodNotFoundError: If the period does not exist.
        """
        period = self._periods.get_model(period_id)
        codes = self._periods.leaf_descendant_codes(period_id)
        if period.period_code not in codes:
            codes = [period.period_code, *codes]

        orgs = self._okrs.organization_models(period.company_id)
        org_ids = [o.id for o in orgs]
        goal_sets = self._okrs.latest_goal_sets(org_ids, codes)
        objectives_by_org = self._okrs.objectives_by_org(org_ids, codes)

        kr_ids = [
            kr.id
            for objectives in objectives_by_org.values()
            for objective in objectives
            for kr in objective.key_results
        ]
        check_in_counts = self._okrs.check_in_counts(kr_ids, codes)

        unapproved: list[UnapprovedGoalSet] = []
        without_checkin: list[KrWithoutCheckin] = []
        zero_orgs: list[ZeroAchievementOrg] = []

        for org in orgs:
            objectives = objectives_by_org.get(org.id, [])
            org_goal_sets = {c: goal_sets.get((org.id, c)) for c in codes}
            if not objectives and not any(org_goal_sets.values()):
                continue

            item = self._unapproved_item(org, codes, objectives, org_goal_sets)
            if item is not None:
                unapproved.append(item)

            without_checkin.extend(
                self._krs_without_checkin(org, objectives, check_in_counts)
            )

            if objectives:
                performance = compute_org_performance(
                    objectives=[objective_to_input(o) for o in objectives],
                    policy=self._grading,
                )
                if performance.is_zero_achievement:
                    zero_orgs.append(
                        ZeroAchievementOrg(
                            org_id=org.id,
                            org_name=org.name,
                            kr_count=performance.total_key_results,
                        )
                    )

        without_checkin.sort(
            key=lambda i: (i.org_name, i.objective_name, i.kr_name, str(i.kr_id))
        )

        report = IncompleteItemsReport(
            period_id=period.id,
            period_code=period.period_code,
            generated_at=self._clock.now(),
            unapproved_sets=tuple(unapproved),
            krs_without_checkin=tuple(without_checkin),
            zero_achievement_orgs=tuple(zero_orgs),
        )

        logger.info(
            "incomplete_items_detected",
            extra={
                "period_id": str(period.id),
                "period_code": period.period_code,
                "scope_codes": codes,
                "unapproved_sets": len(report.unapproved_sets),
                "krs_without_checkin": len(report.krs_without_checkin),
                "zero_achievement_orgs": len(report.zero_achievement_orgs),
            },
        )
        return report

    def _unapproved_item(
        self,
        org: Organization,
        codes: list[str],
        objectives: list[Objective],
        org_goal_sets: dict[str, GoalSet | None],
    ) -> UnapprovedGoalSet | None:
        """First code (calendar order) whose goal set is not approved."""
        codes_with_objectives = {o.period_code for o in objectives}
        for code in codes:
            goal_set = org_goal_sets[code]
            if goal_set is None and code not in codes_with_objectives:
                continue
            status = goal_set.status if goal_set is not None else MISSING_GOAL_SET
            if status not in self._approved:
                return UnapprovedGoalSet(
                    org_id=org.id,
                    org_name=org.name,
                    org_level=org.level,
                    status=status,
                    objective_count=len(objectives),
                )
        return None

    def _krs_without_checkin(
        self,
        org: Organization,
        objectives: list[Objective],
        check_in_counts: dict[tuple[UUID, str], int],
    ) -> list[KrWithoutCheckin]:
        items = []
        for objective in objectives:
            for kr in objective.key_results:
                if check_in_counts.get((kr.id, objective.period_code), 0) == 0:
                    items.append(
                        KrWithoutCheckin(
                            kr_id=kr.id,
                            kr_name=kr.name,
                            objective_name=objective.name,
                            org_id=org.id,
                            org_name=org.name,
                            current_value=kr.current_value,
                            target_value=kr.target_value,
                        )
                    )
        return items
