from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.models.scheduling_batch import TimetableKind
from app.models.semester import Semester
from app.models.unit import Unit
from app.models.unit_assignment import UnitAssignment
from app.models.venue import Venue
from app.schemas.scheduling import (
    SemesterOut,
    TimeSlotOut,
    VenueOut,
    WorkloadLimitOut,
    WorklistItemOut,
)
from app.services.resource_catalog import VENUE_TYPE_BY_KIND, ResourceCatalog

router = APIRouter()


@router.get("/semesters", response_model=list[SemesterOut])
def list_semesters(
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[SemesterOut]:
    query = select(Semester).order_by(Semester.id)
    if active_only:
        query = query.where(Semester.is_active.is_(True))
    return list(db.execute(query).scalars())


@router.get("/semesters/{semester_id}/venues", response_model=list[VenueOut])
def list_venues(
    semester_id: int,
    kind: TimetableKind | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[VenueOut]:
    ResourceCatalog(db, semester_id).semester()
    query = select(Venue).where(Venue.is_active.is_(True))
    if kind is not None:
        query = query.where(Venue.type == VENUE_TYPE_BY_KIND[kind])
    return list(db.execute(query.order_by(Venue.capacity, Venue.code)).scalars())


@router.get("/semesters/{semester_id}/time-slots", response_model=list[TimeSlotOut])
def list_time_slots(semester_id: int, db: Session = Depends(get_db)) -> list[TimeSlotOut]:
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    return catalog.time_slots()


@router.get("/semesters/{semester_id}/worklist", response_model=list[WorklistItemOut])
def get_worklist(
    semester_id: int,
    kind: TimetableKind = Query(default=TimetableKind.exam_timetable),
    program_id: int | None = Query(default=None),
    school_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[WorklistItemOut]:
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    items = catalog.worklist(kind, program_id=program_id, school_id=school_id)
    return [
        WorklistItemOut(
            unit_id=item.unit_id,
            unit_code=item.unit_code,
            unit_name=item.unit_name,
            class_ids=list(item.class_ids),
            class_names=list(item.class_names),
            is_shared=item.is_shared,
            student_count=item.student_count,
            lecturer_code=item.lecturer_code,
            credit_hours=item.credit_hours,
            program_id=item.program_id,
            school_id=item.school_id,
            session_number=item.session_number,
            teaching_mode=item.teaching_mode.value,
            required_duration=item.required_duration,
        )
        for item in items
    ]


@router.get("/semesters/{semester_id}/workload-limits", response_model=list[WorkloadLimitOut])
def list_workload_limits(semester_id: int, db: Session = Depends(get_db)) -> list[WorkloadLimitOut]:
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    limits = catalog.workload_limits()

    units_by_lecturer: dict[str, dict[int, int]] = {}
    rows = db.execute(
        select(UnitAssignment.lecturer_code, Unit.id, Unit.credit_hours)
        .join(Unit, Unit.id == UnitAssignment.unit_id)
        .where(
            UnitAssignment.semester_id == semester_id,
            UnitAssignment.is_active.is_(True),
            UnitAssignment.lecturer_code.is_not(None),
        )
    )
    for lecturer_code, unit_id, credit_hours in rows:
        units_by_lecturer.setdefault(lecturer_code, {})[unit_id] = credit_hours

    return [
        WorkloadLimitOut(
            lecturer_code=lecturer_code,
            max_units=limit.max_units,
            max_credit_hours=limit.max_credit_hours,
            assigned_units=len(units_by_lecturer.get(lecturer_code, {})),
            assigned_credit_hours=sum(units_by_lecturer.get(lecturer_code, {}).values()),
        )
        for lecturer_code, limit in sorted(limits.items())
    ]
