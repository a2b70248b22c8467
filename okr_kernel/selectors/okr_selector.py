"""
Module: okr_kernel.selectors.okr_selector
Responsibility: Read-only access to the upstream OKR data the lifecycle
    consumes: the organization directory, goal set approval status,
    objectives with their key results, and check-ins.
Architecture position: Kernel > Selectors.  May import from db/, models/, domain/.

These tables are owned by other parts of the product.  The lifecycle only
reads them, and always with an explicit company and period scope.

Invariants enforced:
    - Every query is scoped by explicit ids and period codes; nothing here
      reads an ambient "current company" or "current period".
    - Orderings are deterministic (name, then id) so reports built from
      these rows are stable between calls.
"""

from collections import defaultdict
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from okr_kernel.models.objective import CheckIn, Objective
from okr_kernel.models.organization import GoalSet, Organization
from okr_kernel.selectors.base import BaseSelector


class OkrSelector(BaseSelector[Objective]):
    """
    Selector for organizations, goal sets, objectives, key results and check-ins.

    Returns ORM rows: callers are the service layer, which maps them into
    engine inputs or report items and never hands them further up.
    """

    # =========================================================================
    # Organizations and goal sets
    # =========================================================================

    def organization_models(
        self,
        company_id: UUID,
        active_only: bool = True,
    ) -> list[Organization]:
        query = select(Organization).where(Organization.company_id == company_id)
        if active_only:
            query = query.where(Organization.is_active.is_(True))
        query = query.order_by(Organization.name, Organization.id)
        return list(self.session.execute(query).scalars())

    def latest_goal_sets(
        self,
        org_ids: Iterable[UUID],
        period_codes: Iterable[str],
    ) -> dict[tuple[UUID, str], GoalSet]:
        """
        Current goal set per (org_id, period_code): the highest version.

        Pairs without any goal set are absent from the result.
        """
        org_ids = list(org_ids)
        period_codes = list(period_codes)
        if not org_ids or not period_codes:
            return {}

        goal_sets = self.session.execute(
            select(GoalSet)
            .where(
                GoalSet.org_id.in_(org_ids),
                GoalSet.period_code.in_(period_codes),
            )
            .order_by(GoalSet.org_id, GoalSet.period_code, GoalSet.version)
        ).scalars()

        latest: dict[tuple[UUID, str], GoalSet] = {}
        for goal_set in goal_sets:
            latest[(goal_set.org_id, goal_set.period_code)] = goal_set
        return latest

    # =========================================================================
    # Objectives and key results
    # =========================================================================

    def get_objective(self, objective_id: UUID) -> Objective | None:
        return self.session.get(Objective, objective_id)

    def objective_models(
        self,
        org_ids: Iterable[UUID],
        period_codes: Iterable[str],
    ) -> list[Objective]:
        """
        Objectives of the given organizations in the given periods, with key
        results eagerly loaded.

        Ordered by organization, sort_order, name, id.  Key results follow
        the relationship's sort_order.
        """
        org_ids = list(org_ids)
        period_codes = list(period_codes)
        if not org_ids or not period_codes:
            return []

        return list(
            self.session.execute(
                select(Objective)
                .where(
                    Objective.org_id.in_(org_ids),
                    Objective.period_code.in_(period_codes),
                )
                .options(selectinload(Objective.key_results))
                .order_by(
                    Objective.org_id,
                    Objective.sort_order,
                    Objective.name,
                    Objective.id,
                )
            ).scalars()
        )

    def objectives_by_org(
        self,
        org_ids: Iterable[UUID],
        period_codes: Iterable[str],
    ) -> dict[UUID, list[Objective]]:
        grouped: dict[UUID, list[Objective]] = defaultdict(list)
        for objective in self.objective_models(org_ids, period_codes):
            grouped[objective.org_id].append(objective)
        return dict(grouped)

    # =========================================================================
    # Check-ins
    # =========================================================================

    def check_in_models(
        self,
        kr_ids: Iterable[UUID],
        period_codes: Iterable[str],
    ) -> list[CheckIn]:
        kr_ids = list(kr_ids)
        period_codes = list(period_codes)
        if not kr_ids or not period_codes:
            return []

        return list(
            self.session.execute(
                select(CheckIn)
                .where(
                    CheckIn.kr_id.in_(kr_ids),
                    CheckIn.period_code.in_(period_codes),
                )
                .order_by(CheckIn.kr_id, CheckIn.checked_at, CheckIn.id)
            ).scalars()
        )

    def check_in_counts(
        self,
        kr_ids: Iterable[UUID],
        period_codes: Iterable[str],
    ) -> dict[tuple[UUID, str], int]:
        """Check-in count per (kr_id, period_code).  Zero counts are absent."""
        kr_ids = list(kr_ids)
        period_codes = list(period_codes)
        if not kr_ids or not period_codes:
            return {}

        rows = self.session.execute(
            select(CheckIn.kr_id, CheckIn.period_code, func.count(CheckIn.id))
            .where(
                CheckIn.kr_id.in_(kr_ids),
                CheckIn.period_code.in_(period_codes),
            )
            .group_by(CheckIn.kr_id, CheckIn.period_code)
        ).all()
        return {(kr_id, code): count for kr_id, code, count in rows}
