from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_operator
from app.core.exceptions import ResourceNotFoundError
from app.models.scheduled_session import ScheduledSession
from app.models.scheduling_batch import SchedulingBatch, TimetableKind
from app.schemas.scheduling import (
    ActiveBatchesOut,
    BatchOut,
    BatchRunOut,
    BatchRunRequest,
    BatchSummaryOut,
    CancelOut,
    ConflictCauseOut,
    FailureOut,
    PlacementOut,
    RetryRequest,
)
from app.services import batch_control
from app.services.batch_orchestrator import BatchResult, cancel_batch, retry_failures, run_semester
from app.services.conflict_service import ConflictService
from app.services.failure_recorder import batch_summary
from app.services.resource_catalog import ResourceCatalog
from app.services.scheduling_types import CheckPolicy

router = APIRouter()


def _run_out(result: BatchResult) -> BatchRunOut:
    return BatchRunOut(
        batch=BatchOut.model_validate(result.batch),
        placements=[PlacementOut.model_validate(item) for item in result.placements],
        failures=[FailureOut.model_validate(item) for item in result.failures],
    )


@router.post("/semesters/{semester_id}/batches", response_model=BatchRunOut, status_code=status.HTTP_201_CREATED)
def create_batch(
    semester_id: int,
    payload: BatchRunRequest,
    operator: str | None = Depends(get_operator),
    db: Session = Depends(get_db),
) -> BatchRunOut:
    result = run_semester(
        db,
        semester_id=semester_id,
        options=payload.options(),
        triggered_by=operator,
        batch_id=payload.batch_id,
    )
    return _run_out(result)


@router.post("/batches/retry", response_model=BatchRunOut, status_code=status.HTTP_201_CREATED)
def retry_batch_failures(
    payload: RetryRequest,
    operator: str | None = Depends(get_operator),
    db: Session = Depends(get_db),
) -> BatchRunOut:
    overrides = payload.model_dump(exclude={"failure_ids"}, exclude_unset=True, mode="json")
    result = retry_failures(db, payload.failure_ids, overrides=overrides, triggered_by=operator)
    return _run_out(result)


@router.get("/batches/{batch_id}", response_model=BatchOut)
def get_batch(batch_id: str, db: Session = Depends(get_db)) -> BatchOut:
    batch = db.get(SchedulingBatch, batch_id)
    if batch is None:
        raise ResourceNotFoundError("Scheduling batch", batch_id)
    return batch


@router.get("/batches/{batch_id}/summary", response_model=BatchSummaryOut)
def get_batch_summary(batch_id: str, db: Session = Depends(get_db)) -> BatchSummaryOut:
    return batch_summary(db, batch_id)


@router.post("/batches/{batch_id}/cancel", response_model=CancelOut, status_code=status.HTTP_202_ACCEPTED)
def request_batch_cancel(
    batch_id: str,
    operator: str | None = Depends(get_operator),
    db: Session = Depends(get_db),
) -> CancelOut:
    return CancelOut(batch_id=batch_id, cancel_requested=cancel_batch(db, batch_id, requested_by=operator))


@router.get("/semesters/{semester_id}/placements", response_model=list[PlacementOut])
def list_placements(
    semester_id: int,
    kind: TimetableKind | None = Query(default=None),
    batch_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[PlacementOut]:
    ResourceCatalog(db, semester_id).semester()
    query = select(ScheduledSession).where(ScheduledSession.semester_id == semester_id)
    if kind is not None:
        query = query.where(ScheduledSession.kind == kind)
    if batch_id is not None:
        query = query.where(ScheduledSession.batch_id == batch_id)
    query = query.order_by(
        ScheduledSession.session_date,
        ScheduledSession.day,
        ScheduledSession.start_time,
        ScheduledSession.venue_code,
    )
    return list(db.execute(query).scalars())


@router.get("/semesters/{semester_id}/batches/active", response_model=ActiveBatchesOut)
def list_active_batches(semester_id: int, db: Session = Depends(get_db)) -> ActiveBatchesOut:
    ResourceCatalog(db, semester_id).semester()
    return ActiveBatchesOut(semester_id=semester_id, batch_ids=batch_control.active_batches(semester_id))


@router.get("/semesters/{semester_id}/conflicts", response_model=list[ConflictCauseOut])
def audit_conflicts(
    semester_id: int,
    kind: TimetableKind = Query(default=TimetableKind.exam_timetable),
    db: Session = Depends(get_db),
) -> list[ConflictCauseOut]:
    """Re-check committed placements pairwise, e.g. after manual edits to the timetable."""
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    policy = CheckPolicy(
        class_students=catalog.class_students(),
        shared_invigilation=kind == TimetableKind.exam_timetable,
    )
    conflicts = ConflictService(catalog.booked_placements(kind), policy).detect_conflicts()
    return [ConflictCauseOut(**cause.to_dict()) for cause in conflicts]
