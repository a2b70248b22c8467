"""
okr_services.carry_over -- Objectives offered for carry-over into a new period.

Responsibility:
    Lists a prior period's objectives (optionally for one organization)
    with their key results and an achievement figure, for the drafting
    screen where an organization decides what to continue.

Architecture position:
    Services -- composes OkrSelector with the achievement engine.

Invariants enforced:
    - ``achievement_rate`` is the UNWEIGHTED mean of the key results'
      current/target ratios in whole percent.  It is a separate figure from
      the snapshot's weighted rate and is named and computed separately.
    - Read-only.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from okr_engines.achievement import carry_over_kr_rate, carry_over_rate
from okr_kernel.domain.dtos import CarryOverCandidate, CarryOverKeyResult
from okr_kernel.logging_config import get_logger
from okr_kernel.selectors.okr_selector import OkrSelector

logger = get_logger("services.carry_over")


class CarryOverService:
    """Builds carry-over candidates from a prior period."""

    def __init__(self, session: Session) -> None:
        self._okrs = OkrSelector(session)

    def candidates(
        self,
        company_id: UUID,
        previous_period_code: str,
        org_id: UUID | None = None,
    ) -> list[CarryOverCandidate]:
        """Objectives of ``previous_period_code``, by organization name then sort order.

        An ``org_id`` outside the company yields an empty list.
        """
        orgs = self._okrs.organization_models(company_id, active_only=False)
        if org_id is not None:
            orgs = [o for o in orgs if o.id == org_id]
        names = {o.id: o.name for o in orgs}

        objectives_by_org = self._okrs.objectives_by_org(names.keys(), [previous_period_code])

        result: list[CarryOverCandidate] = []
        for org in orgs:
            for objective in objectives_by_org.get(org.id, []):
                krs = tuple(
                    CarryOverKeyResult(
                        kr_id=kr.id,
                        name=kr.name,
                        unit=kr.unit,
                        weight=Decimal(kr.weight or 0),
                        target_value=Decimal(kr.target_value),
                        current_value=Decimal(kr.current_value or 0),
                        achievement_rate=carry_over_kr_rate(
                            Decimal(kr.current_value or 0), Decimal(kr.target_value)
                        ),
                    )
                    for kr in objective.key_results
                )
                result.append(
                    CarryOverCandidate(
                        objective_id=objective.id,
                        objective_name=objective.name,
                        org_id=org.id,
                        org_name=names[org.id],
                        period_code=objective.period_code,
                        bii_type=objective.bii_type,
                        status=objective.status,
                        achievement_rate=carry_over_rate(
                            [(kr.current_value, kr.target_value) for kr in krs]
                        ),
                        key_results=krs,
                    )
                )

        logger.info(
            "carry_over_candidates_listed",
            extra={
                "company_id": str(company_id),
                "previous_period_code": previous_period_code,
                "org_id": str(org_id) if org_id else None,
                "candidate_count": len(result),
            },
        )
        return result
