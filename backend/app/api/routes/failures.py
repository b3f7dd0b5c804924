from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_operator
from app.models.scheduling_batch import TimetableKind
from app.models.scheduling_failure import FailureStatus
from app.schemas.scheduling import (
    FailureOut,
    FailureReopenRequest,
    FailureResolveRequest,
    FailureStatisticsOut,
)
from app.services.failure_recorder import (
    as_exam_failure_row,
    as_program_failure_row,
    failure_statistics,
    get_failure,
    list_failures,
    reopen_failure,
    resolve_failure,
)

router = APIRouter()


@router.get("/failures", response_model=list[FailureOut])
def get_failures(
    semester_id: int | None = Query(default=None),
    batch_id: str | None = Query(default=None),
    kind: TimetableKind | None = Query(default=None),
    status: FailureStatus | None = Query(default=None),
    school_id: int | None = Query(default=None),
    program_id: int | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[FailureOut]:
    return list_failures(
        db,
        semester_id=semester_id,
        batch_id=batch_id,
        kind=kind,
        status=status,
        school_id=school_id,
        program_id=program_id,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/failures/statistics", response_model=FailureStatisticsOut)
def get_failure_statistics(
    semester_id: int | None = Query(default=None),
    kind: TimetableKind | None = Query(default=None),
    db: Session = Depends(get_db),
) -> FailureStatisticsOut:
    return failure_statistics(db, semester_id=semester_id, kind=kind)


@router.get("/failures/{failure_id}", response_model=FailureOut)
def get_failure_detail(failure_id: str, db: Session = Depends(get_db)) -> FailureOut:
    return get_failure(db, failure_id)


@router.post("/failures/{failure_id}/resolve", response_model=FailureOut)
def resolve(
    failure_id: str,
    payload: FailureResolveRequest,
    operator: str | None = Depends(get_operator),
    db: Session = Depends(get_db),
) -> FailureOut:
    failure = resolve_failure(db, failure_id, status=payload.status, notes=payload.notes, resolved_by=operator)
    db.commit()
    db.refresh(failure)
    return failure


@router.post("/failures/{failure_id}/reopen", response_model=FailureOut)
def reopen(
    failure_id: str,
    payload: FailureReopenRequest,
    operator: str | None = Depends(get_operator),
    db: Session = Depends(get_db),
) -> FailureOut:
    failure = reopen_failure(db, failure_id, notes=payload.notes, reopened_by=operator)
    db.commit()
    db.refresh(failure)
    return failure


@router.get("/failures/{failure_id}/projection")
def get_failure_projection(
    failure_id: str,
    shape: Literal["exam", "program"] = Query(default="exam"),
    db: Session = Depends(get_db),
) -> dict:
    failure = get_failure(db, failure_id)
    if shape == "program":
        return as_program_failure_row(failure)
    return as_exam_failure_row(failure)
