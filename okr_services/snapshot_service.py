"""
okr_services.snapshot_service -- Period snapshots and the company summary.

Responsibility:
    Freezes a closed period into immutable history: one PeriodSnapshot per
    organization plus one CompanyPeriodSummary.  Leaf periods are captured
    from live OKR data; half and year periods are rolled up from their
    children's snapshots and never recompute from live data.

Architecture position:
    Services -- composes kernel selectors and CloseLogService with the
    org_performance, rollup and company_summary engines.

Invariants enforced:
    - Only ``closed`` periods are snapshotted.
    - At most one snapshot set per period: a second attempt is rejected
      before anything is written (and the (period, organization) unique
      constraint backs this under concurrency).  There is no partial
      overwrite.
    - Forced-closure provenance (force_closed, reason, incomplete items)
      is copied onto every snapshot of the period.
    - A rollup requires every direct child to have a company summary, i.e.
      to have been captured.  degraded_sources names force-closed children.
    - Snapshot creation writes one ``snapshot_created`` close log row.
    - Flush-only.

Failure modes:
    - PeriodNotFoundError, SnapshotNotAllowedError,
      SnapshotAlreadyExistsError, ChildSnapshotsMissingError.
    - SnapshotRecordError if a child snapshot payload cannot be decoded.
    - PersistenceError for any other store failure.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from okr_engines.company_summary import OrgFigures, summarize_company
from okr_engines.grading import GradingPolicy
from okr_engines.org_performance import compute_org_performance
from okr_engines.rollup import ChildFigures, rollup_children
from okr_kernel.domain.clock import Clock, SystemClock
from okr_kernel.domain.dtos import SnapshotResult
from okr_kernel.domain.lifecycle import CloseLogAction, PeriodStatus
from okr_kernel.domain.snapshot_records import decode_records, encode_records
from okr_kernel.exceptions import (
    ChildSnapshotsMissingError,
    PersistenceError,
    SnapshotAlreadyExistsError,
    SnapshotNotAllowedError,
)
from okr_kernel.logging_config import LogContext, get_logger
from okr_kernel.models.fiscal_period import FiscalPeriod
from okr_kernel.models.period_snapshot import CaptureKind, CompanyPeriodSummary, PeriodSnapshot
from okr_kernel.selectors.okr_selector import OkrSelector
from okr_kernel.selectors.period_selector import PeriodSelector
from okr_kernel.selectors.snapshot_selector import SnapshotSelector
from okr_kernel.services.close_log_service import CloseLogService
from okr_services._okr_mapping import (
    check_in_record,
    key_result_record,
    objective_record,
    objective_to_input,
)

logger = get_logger("services.snapshot")


class SnapshotService:
    """Captures and rolls up period snapshots.

    Contract:
        ``create_snapshot()`` writes the full snapshot set and summary for a
        closed period, or raises having written nothing.

    Non-goals:
        - Does NOT close periods; the lifecycle coordinator calls this after
          TransitionService succeeds.
        - Does NOT replace an existing snapshot set.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        grading_policy: GradingPolicy | None = None,
        ranking_size: int = 5,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._grading = grading_policy or GradingPolicy()
        self._ranking_size = ranking_size
        self._periods = PeriodSelector(session)
        self._okrs = OkrSelector(session)
        self._history = SnapshotSelector(session)
        self._close_log = CloseLogService(session, self._clock)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def create_snapshot(self, period_id: UUID, actor_id: UUID) -> SnapshotResult:
        """Snapshot a closed period: leaf capture or rollup, then summary.

        Raises:
            See module docstring.
        """
        period = self._periods.get_for_update(period_id)

        with LogContext.bind(period_id=period.id, period_code=period.period_code):
            if period.status != PeriodStatus.CLOSED.value:
                logger.warning(
                    "snapshot_not_allowed",
                    extra={"status": period.status},
                )
                raise SnapshotNotAllowedError(period.period_code, period.status)

            existing = self._history.snapshot_count(period.id)
            if existing or self._history.summary_model(period.id) is not None:
                logger.warning(
                    "snapshot_already_exists",
                    extra={"existing_count": existing},
                )
                raise SnapshotAlreadyExistsError(period.period_code, existing)

            children = self._periods.child_models(period.id)
            now = self._clock.now()
            # a failed flush expires the instance
            period_code = period.period_code

            try:
                if children:
                    kind = CaptureKind.ROLLUP
                    snapshots = self._rollup(period, children, actor_id, now)
                else:
                    kind = CaptureKind.CAPTURE
                    snapshots = self._capture(period, actor_id, now)

                for snapshot in snapshots:
                    self._session.add(snapshot)
                self._session.flush()

                summary = self._summarize(period, snapshots, actor_id, now)
                self._session.add(summary)
                self._session.flush()

                log = self._close_log.record(
                    period.id,
                    CloseLogAction.SNAPSHOT_CREATED,
                    actor_id,
                    details={
                        "capture_kind": kind.value,
                        "snapshot_count": len(snapshots),
                        "summary_id": str(summary.id),
                        "force_closed": period.force_closed,
                    },
                )
            except IntegrityError as exc:
                logger.warning("concurrent_snapshot_conflict")
                raise SnapshotAlreadyExistsError(period_code, existing) from exc
            except SQLAlchemyError as exc:
                logger.error(
                    "snapshot_persistence_failed",
                    extra={"error": str(exc)},
                )
                raise PersistenceError("create snapshot", str(exc)) from exc

            logger.info(
                "snapshot_created",
                extra={
                    "capture_kind": kind.value,
                    "snapshot_count": len(snapshots),
                    "company_avg_achievement": str(summary.company_avg_achievement),
                    "force_closed": period.force_closed,
                },
            )

            return SnapshotResult(
                period_id=period.id,
                period_code=period.period_code,
                capture_kind=kind.value,
                snapshot_count=len(snapshots),
                snapshot_ids=tuple(s.id for s in snapshots),
                summary_id=summary.id,
                log_id=log.id,
            )

    # ------------------------------------------------------------------
    # Leaf capture
    # ------------------------------------------------------------------

    def _capture(
        self,
        period: FiscalPeriod,
        actor_id: UUID,
        now,
    ) -> list[PeriodSnapshot]:
        orgs = self._okrs.organization_models(period.company_id)
        codes = [period.period_code]
        objectives_by_org = self._okrs.objectives_by_org([o.id for o in orgs], codes)

        kr_ids = [
            kr.id
            for objectives in objectives_by_org.values()
            for objective in objectives
            for kr in objective.key_results
        ]
        check_ins_by_kr = defaultdict(list)
        for check_in in self._okrs.check_in_models(kr_ids, codes):
            check_ins_by_kr[check_in.kr_id].append(check_in)

        snapshots = []
        for org in orgs:
            objectives = objectives_by_org.get(org.id, [])
            inputs = [objective_to_input(o) for o in objectives]
            performance = compute_org_performance(objectives=inputs, policy=self._grading)

            scores = {s.kr_id: s for s in performance.key_results}
            objective_records = [
                objective_record(o, a) for o, a in zip(objectives, performance.objectives)
            ]
            kr_records = [
                key_result_record(kr, scores[kr.kr_id])
                for objective in inputs
                for kr in objective.key_results
            ]
            check_in_records = [
                check_in_record(c)
                for objective in objectives
                for kr in objective.key_results
                for c in check_ins_by_kr.get(kr.id, [])
            ]

            snapshots.append(
                self._new_snapshot(
                    period,
                    org_id=org.id,
                    org_name=org.name,
                    kind=CaptureKind.CAPTURE,
                    actor_id=actor_id,
                    now=now,
                    objectives=encode_records(objective_records),
                    key_results=encode_records(kr_records),
                    check_ins=encode_records(check_in_records),
                    total_objectives=performance.total_objectives,
                    total_key_results=performance.total_key_results,
                    total_check_ins=len(check_in_records),
                    avg_rate=performance.avg_achievement_rate,
                    weighted_rate=performance.weighted_achievement_rate,
                    grade_distribution=performance.grade_distribution,
                    bii_distribution=performance.bii_distribution,
                    perspective_distribution=performance.perspective_distribution,
                    status_summary=performance.status_summary,
                    weight_anomalies=list(performance.weight_anomalies),
                    source_snapshot_ids=[],
                    degraded_sources=[],
                )
            )

        logger.info(
            "leaf_capture_computed",
            extra={"org_count": len(orgs), "kr_count": len(kr_ids)},
        )
        return snapshots

    # ------------------------------------------------------------------
    # Rollup
    # ------------------------------------------------------------------

    def _rollup(
        self,
        period: FiscalPeriod,
        children: list[FiscalPeriod],
        actor_id: UUID,
        now,
    ) -> list[PeriodSnapshot]:
        captured = self._history.periods_with_summary([c.id for c in children])
        missing = [c.period_code for c in children if c.id not in captured]
        if missing:
            logger.warning(
                "child_snapshots_missing",
                extra={"missing_children": missing},
            )
            raise ChildSnapshotsMissingError(period.period_code, missing)

        # org_id -> [(child period, child snapshot)] in child order
        by_org: dict[UUID, list[tuple[FiscalPeriod, PeriodSnapshot]]] = defaultdict(list)
        org_names: dict[UUID, str] = {}
        for child in children:
            for snapshot in self._history.snapshot_models(child.id):
                by_org[snapshot.organization_id].append((child, snapshot))
                org_names[snapshot.organization_id] = snapshot.organization_name

        snapshots = []
        for org_id in sorted(by_org, key=lambda o: (org_names[o], str(o))):
            pairs = by_org[org_id]
            figures = rollup_children(
                children=[_child_figures(child, snap) for child, snap in pairs]
            )

            objectives: list[dict] = []
            key_results: list[dict] = []
            check_ins: list[dict] = []
            for _, snap in pairs:
                objectives.extend(encode_records(decode_records(snap.objectives_snapshot)))
                key_results.extend(encode_records(decode_records(snap.key_results_snapshot)))
                check_ins.extend(encode_records(decode_records(snap.check_ins_snapshot)))

            snapshots.append(
                self._new_snapshot(
                    period,
                    org_id=org_id,
                    org_name=org_names[org_id],
                    kind=CaptureKind.ROLLUP,
                    actor_id=actor_id,
                    now=now,
                    objectives=objectives,
                    key_results=key_results,
                    check_ins=check_ins,
                    total_objectives=figures.total_objectives,
                    total_key_results=figures.total_key_results,
                    total_check_ins=figures.total_check_ins,
                    avg_rate=figures.avg_achievement_rate,
                    weighted_rate=figures.weighted_achievement_rate,
                    grade_distribution=figures.grade_distribution,
                    bii_distribution=figures.bii_distribution,
                    perspective_distribution=figures.perspective_distribution,
                    status_summary=figures.status_summary,
                    weight_anomalies=list(figures.weight_anomalies),
                    source_snapshot_ids=list(figures.source_snapshot_ids),
                    degraded_sources=list(figures.degraded_sources),
                )
            )

        logger.info(
            "rollup_computed",
            extra={
                "child_codes": [c.period_code for c in children],
                "org_count": len(snapshots),
            },
        )
        return snapshots

    # ------------------------------------------------------------------
    # Company summary
    # ------------------------------------------------------------------

    def _summarize(
        self,
        period: FiscalPeriod,
        snapshots: list[PeriodSnapshot],
        actor_id: UUID,
        now,
    ) -> CompanyPeriodSummary:
        figures = summarize_company(
            orgs=[
                OrgFigures(
                    org_id=str(s.organization_id),
                    org_name=s.organization_name,
                    total_objectives=s.total_objectives,
                    total_key_results=s.total_key_results,
                    weighted_achievement_rate=Decimal(s.weighted_achievement_rate),
                    grade_distribution=s.grade_distribution,
                    bii_distribution=s.bii_distribution,
                    perspective_distribution=s.perspective_distribution,
                )
                for s in snapshots
            ],
            ranking_size=self._ranking_size,
        )
        return CompanyPeriodSummary(
            period_id=period.id,
            company_id=period.company_id,
            computed_at=now,
            total_orgs=figures.total_orgs,
            total_objectives=figures.total_objectives,
            total_key_results=figures.total_key_results,
            company_avg_achievement=figures.company_avg_achievement,
            top_performers=list(figures.top_performers),
            low_performers=list(figures.low_performers),
            grade_distribution=figures.grade_distribution,
            bii_distribution=figures.bii_distribution,
            perspective_distribution=figures.perspective_distribution,
            created_by_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_snapshot(
        self,
        period: FiscalPeriod,
        *,
        org_id: UUID,
        org_name: str,
        kind: CaptureKind,
        actor_id: UUID,
        now,
        objectives: list,
        key_results: list,
        check_ins: list,
        total_objectives: int,
        total_key_results: int,
        total_check_ins: int,
        avg_rate: Decimal,
        weighted_rate: Decimal,
        grade_distribution: dict,
        bii_distribution: dict,
        perspective_distribution: dict,
        status_summary: dict,
        weight_anomalies: list,
        source_snapshot_ids: list,
        degraded_sources: list,
    ) -> PeriodSnapshot:
        return PeriodSnapshot(
            period_id=period.id,
            organization_id=org_id,
            organization_name=org_name,
            capture_kind=kind.value,
            captured_at=now,
            objectives_snapshot=objectives,
            key_results_snapshot=key_results,
            check_ins_snapshot=check_ins,
            total_objectives=total_objectives,
            total_key_results=total_key_results,
            total_check_ins=total_check_ins,
            avg_achievement_rate=avg_rate,
            weighted_achievement_rate=weighted_rate,
            grade_distribution=dict(grade_distribution),
            bii_distribution=dict(bii_distribution),
            perspective_distribution=dict(perspective_distribution),
            status_summary=dict(status_summary),
            weight_anomalies=weight_anomalies,
            source_snapshot_ids=source_snapshot_ids,
            force_closed=period.force_closed,
            force_close_reason=period.force_close_reason,
            incomplete_items=period.incomplete_items,
            degraded_sources=degraded_sources,
            created_by_id=actor_id,
        )


def _child_figures(child: FiscalPeriod, snapshot: PeriodSnapshot) -> ChildFigures:
    return ChildFigures(
        snapshot_id=str(snapshot.id),
        period_code=child.period_code,
        total_objectives=snapshot.total_objectives,
        total_key_results=snapshot.total_key_results,
        total_check_ins=snapshot.total_check_ins,
        avg_achievement_rate=Decimal(snapshot.avg_achievement_rate),
        weighted_achievement_rate=Decimal(snapshot.weighted_achievement_rate),
        grade_distribution=snapshot.grade_distribution,
        bii_distribution=snapshot.bii_distribution,
        perspective_distribution=snapshot.perspective_distribution,
        status_summary=snapshot.status_summary,
        weight_anomalies=tuple(snapshot.weight_anomalies or ()),
        force_closed=snapshot.force_closed,
        degraded_sources=tuple(snapshot.degraded_sources or ()),
    )
