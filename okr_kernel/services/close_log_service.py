"""
CloseLogService -- append-only audit trail of period lifecycle events.

Responsibility:
    Writes one PeriodCloseLog row per lifecycle event (transition or
    snapshot creation) with a gap-free, per-period ``sequence``.

Architecture position:
    Kernel > Services -- imperative shell.  Called by TransitionService
    and SnapshotService inside the same flush as the change it records.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - ``sequence`` starts at 1 per period and increases by one; the
      (period_id, sequence) unique constraint rejects a concurrent duplicate.
    - Flush-only: the log row and the change it records commit together.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus
from okr_kernel.logging_config import get_logger
from okr_kernel.models.period_close_log import PeriodCloseLog
from okr_kernel.selectors.snapshot_selector import SnapshotSelector
from okr_kernel.services.base import BaseService

logger = get_logger("services.close_log")


class CloseLogService(BaseService[PeriodCloseLog]):
    """Appends close log rows."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._selector = SnapshotSelector(session)

    def record(
        self,
        period_id: UUID,
        action: CloseLogAction,
        actor_id: UUID,
        from_status: PeriodStatus | None = None,
        to_status: PeriodStatus | None = None,
        details: dict[str, Any] | None = None,
    ) -> PeriodCloseLog:
        """
        Append one log row and flush it.

        Returns:
            The persisted row (its id is the log id reported to callers).
        """
        entry = PeriodCloseLog(
            period_id=period_id,
            sequence=self._selector.last_sequence(period_id) + 1,
            action=CloseLogAction(action).value,
            from_status=PeriodStatus(from_status).value if from_status else None,
            to_status=PeriodStatus(to_status).value if to_status else None,
            performed_at=self._clock.now(),
            details=details or {},
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "close_log_recorded",
            extra={
                "period_id": str(period_id),
                "sequence": entry.sequence,
                "action": entry.action,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
            },
        )
        return entry
