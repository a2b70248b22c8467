"""
ContinuityService -- objective lineage across periods.

Responsibility:
    Records directed edges from an objective in an earlier period to one in
    a later period (carry-over, evolved, split, merged) and reads them back
    from either endpoint.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Both endpoints exist; an objective cannot continue itself.
    - At most one edge per (source, target) pair.  Split and merge create
      several edges sharing one endpoint, which is allowed.
    - Edges are informational: they never constrain transitions or
      snapshots.
    - Flush-only.

Failure modes:
    - ObjectiveNotFoundError, InvalidContinuityError.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from okr_kernel.domain.dtos import ContinuityEdge
from okr_kernel.exceptions import InvalidContinuityError, ObjectiveNotFoundError
from okr_kernel.logging_config import get_logger
from okr_kernel.models.objective_continuity import ContinuityType, ObjectiveContinuity
from okr_kernel.selectors.okr_selector import OkrSelector
from okr_kernel.selectors.snapshot_selector import SnapshotSelector
from okr_kernel.services.base import BaseService

logger = get_logger("services.continuity")


class ContinuityService(BaseService[ObjectiveContinuity]):
    """Creates and reads objective continuity edges."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._okrs = OkrSelector(session)
        self._history = SnapshotSelector(session)

    def create_edge(
        self,
        source_objective_id: UUID,
        target_objective_id: UUID,
        continuity_type: ContinuityType | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ContinuityEdge:
        """
        Link ``source`` (earlier period) to ``target`` (later period).

        Raises:
            ObjectiveNotFoundError: If either objective is missing.
            InvalidContinuityError: Self-link, unknown type, or duplicate pair.
        """
        try:
            kind = ContinuityType(continuity_type)
        except ValueError as exc:
            raise InvalidContinuityError(
                str(source_objective_id),
                str(target_objective_id),
                f"unknown continuity type '{continuity_type}'",
            ) from exc

        if source_objective_id == target_objective_id:
            raise InvalidContinuityError(
                str(source_objective_id), str(target_objective_id), "objective cannot continue itself"
            )

        source = self._okrs.get_objective(source_objective_id)
        if source is None:
            raise ObjectiveNotFoundError(str(source_objective_id))
        target = self._okrs.get_objective(target_objective_id)
        if target is None:
            raise ObjectiveNotFoundError(str(target_objective_id))

        if self._history.edge_exists(source.id, target.id):
            raise InvalidContinuityError(
                str(source.id), str(target.id), "edge already exists"
            )

        edge = ObjectiveContinuity(
            source_objective_id=source.id,
            target_objective_id=target.id,
            source_period_code=source.period_code,
            target_period_code=target.period_code,
            continuity_type=kind.value,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(edge)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise InvalidContinuityError(
                str(source_objective_id), str(target_objective_id), "edge already exists"
            ) from exc

        logger.info(
            "objective_continuity_created",
            extra={
                "source_objective_id": str(source.id),
                "target_objective_id": str(target.id),
                "source_period_code": source.period_code,
                "target_period_code": target.period_code,
                "continuity_type": kind.value,
            },
        )
        return ContinuityEdge.from_model(edge)

    def edges_for(self, objective_id: UUID) -> list[ContinuityEdge]:
        """
        Raises:
            ObjectiveNotFoundError: If the objective does not exist.
        """
        if self._okrs.get_objective(objective_id) is None:
            raise ObjectiveNotFoundError(str(objective_id))
        return self._history.continuity_edges(objective_id)
