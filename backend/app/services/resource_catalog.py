from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ResourceNotFoundError, WorklistError
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.lecturer_workload_limit import LecturerWorkloadLimit
from app.models.school_class import SchoolClass
from app.models.scheduled_session import ScheduledSession
from app.models.scheduling_batch import TimetableKind
from app.models.semester import Semester
from app.models.time_slot import TimeSlot
from app.models.unit import Unit
from app.models.unit_assignment import UnitAssignment
from app.models.venue import Venue, VenueType
from app.schemas.calendar import day_index, parse_time_to_minutes
from app.services.scheduling_types import (
    ONLINE_VENUE,
    CandidateSlot,
    PerClass,
    Placement,
    SchedulableItem,
    Shared,
    TeachingMode,
    VenueInfo,
)
from app.services.workload import WorkloadLimit

logger = logging.getLogger(__name__)

VENUE_TYPE_BY_KIND = {
    TimetableKind.class_timetable: VenueType.classroom,
    TimetableKind.exam_timetable: VenueType.examroom,
}


def venue_info(venue: Venue) -> VenueInfo:
    return VenueInfo(id=venue.id, code=venue.code, capacity=venue.capacity, name=venue.name, building=venue.building)


def sessions_for_credits(credit_hours: int) -> list[tuple[TeachingMode, int]]:
    """Weekly sessions for a unit: one physical block when credits allow, the rest online.

    A 3-credit unit gets a 2-hour physical session and one 1-hour online
    session. Units without credit hours still get a single physical block.
    """
    settings = get_settings()
    physical_hours = settings.class_physical_session_minutes // 60
    if credit_hours <= 0:
        return [(TeachingMode.physical, settings.class_physical_session_minutes)]
    sessions = []
    remaining = credit_hours
    if credit_hours >= physical_hours:
        sessions.append((TeachingMode.physical, settings.class_physical_session_minutes))
        remaining -= physical_hours
    online_hours = max(settings.class_online_session_minutes // 60, 1)
    while remaining > 0:
        sessions.append((TeachingMode.online, settings.class_online_session_minutes))
        remaining -= online_hours
    return sessions


class ResourceCatalog:
    """Read-only view of one semester's scheduling inputs."""

    def __init__(self, db: Session, semester_id: int) -> None:
        self.db = db
        self.semester_id = semester_id
        self._class_students: dict[int, frozenset[str]] | None = None
        self._classes: dict[int, SchoolClass] | None = None

    def semester(self) -> Semester:
        semester = self.db.get(Semester, self.semester_id)
        if semester is None:
            raise ResourceNotFoundError("Semester", str(self.semester_id))
        return semester

    def venues(self, kind: TimetableKind, venue_ids: Iterable[int] | None = None) -> list[VenueInfo]:
        query = select(Venue).where(Venue.is_active.is_(True), Venue.type == VENUE_TYPE_BY_KIND[kind])
        if venue_ids is not None:
            query = query.where(Venue.id.in_(list(venue_ids)))
        rows = self.db.execute(query.order_by(Venue.capacity, Venue.code, Venue.id)).scalars()
        return [venue_info(venue) for venue in rows]

    def time_slots(self) -> list[TimeSlot]:
        rows = self.db.execute(select(TimeSlot).order_by(TimeSlot.id)).scalars()
        return sorted(rows, key=lambda slot: (day_index(slot.day), parse_time_to_minutes(slot.start_time), slot.id))

    def classes(self) -> dict[int, SchoolClass]:
        if self._classes is None:
            rows = self.db.execute(select(SchoolClass).where(SchoolClass.semester_id == self.semester_id)).scalars()
            self._classes = {row.id: row for row in rows}
        return self._classes

    def class_students(self) -> dict[int, frozenset[str]]:
        """Active enrollments grouped by class, used for student-overlap checks."""
        if self._class_students is None:
            grouped: dict[int, set[str]] = defaultdict(set)
            rows = self.db.execute(
                select(Enrollment.class_id, Enrollment.student_code).where(
                    Enrollment.semester_id == self.semester_id,
                    Enrollment.status == EnrollmentStatus.enrolled,
                )
            )
            for class_id, student_code in rows:
                grouped[class_id].add(student_code)
            self._class_students = {class_id: frozenset(students) for class_id, students in grouped.items()}
        return self._class_students

    def workload_limits(self) -> dict[str, WorkloadLimit]:
        rows = self.db.execute(
            select(LecturerWorkloadLimit).where(
                LecturerWorkloadLimit.semester_id == self.semester_id,
                LecturerWorkloadLimit.is_active.is_(True),
            )
        ).scalars()
        return {
            row.lecturer_code: WorkloadLimit(max_units=row.max_units, max_credit_hours=row.max_credit_hours)
            for row in rows
        }

    def _unit_enrollments(self) -> dict[int, dict[int, set[str]]]:
        """unit_id -> class_id -> enrolled student codes."""
        by_unit: dict[int, dict[int, set[str]]] = defaultdict(lambda: defaultdict(set))
        rows = self.db.execute(
            select(Enrollment.unit_id, Enrollment.class_id, Enrollment.student_code).where(
                Enrollment.semester_id == self.semester_id,
                Enrollment.status == EnrollmentStatus.enrolled,
            )
        )
        for unit_id, class_id, student_code in rows:
            by_unit[unit_id][class_id].add(student_code)
        return by_unit

    def worklist(
        self,
        kind: TimetableKind,
        *,
        required_duration: int = 0,
        program_id: int | None = None,
        school_id: int | None = None,
        unit_ids: Iterable[int] | None = None,
    ) -> list[SchedulableItem]:
        """Derive schedulable items from active unit assignments and enrollments.

        A null class_id on an assignment yields one Shared item covering every
        class enrolled in the unit that has no class-specific assignment.
        Class timetables without a fixed session length get one item per
        weekly session from ``sessions_for_credits``.
        """
        query = select(UnitAssignment).where(
            UnitAssignment.semester_id == self.semester_id,
            UnitAssignment.is_active.is_(True),
        )
        if program_id is not None:
            query = query.where(UnitAssignment.program_id == program_id)
        if unit_ids is not None:
            query = query.where(UnitAssignment.unit_id.in_(list(unit_ids)))
        assignments = list(self.db.execute(query.order_by(UnitAssignment.unit_id, UnitAssignment.id)).scalars())
        if not assignments:
            return []

        units = {
            unit.id: unit
            for unit in self.db.execute(
                select(Unit).where(Unit.id.in_({assignment.unit_id for assignment in assignments}))
            ).scalars()
        }
        enrollments = self._unit_enrollments()
        classes = self.classes()
        per_class_ids: dict[int, set[int]] = defaultdict(set)
        for assignment in assignments:
            if assignment.class_id is not None:
                per_class_ids[assignment.unit_id].add(assignment.class_id)

        items: list[SchedulableItem] = []
        for assignment in assignments:
            unit = units.get(assignment.unit_id)
            if unit is None:
                logger.warning("Unit assignment %s references missing unit %s", assignment.id, assignment.unit_id)
                continue
            if school_id is not None and unit.school_id != school_id:
                continue
            by_class = enrollments.get(unit.id, {})
            if assignment.class_id is not None:
                group = PerClass(assignment.class_id)
            else:
                shared = sorted(set(by_class) - per_class_ids[unit.id])
                group = Shared(tuple(shared))
            students: set[str] = set()
            for class_id in group.class_ids:
                students.update(by_class.get(class_id, set()))
            if not group.class_ids or not students:
                logger.info(
                    "Skipping unit %s (assignment %s): no enrolled students in semester %s",
                    unit.code,
                    assignment.id,
                    self.semester_id,
                )
                continue
            base = SchedulableItem(
                unit_id=unit.id,
                unit_code=unit.code,
                unit_name=unit.name,
                semester_id=self.semester_id,
                class_group=group,
                student_count=len(students),
                required_duration=required_duration,
                lecturer_code=assignment.lecturer_code,
                credit_hours=unit.credit_hours,
                program_id=assignment.program_id if assignment.program_id is not None else unit.program_id,
                school_id=unit.school_id,
                class_names=tuple(
                    classes[class_id].display_name if class_id in classes else f"Class {class_id}"
                    for class_id in group.class_ids
                ),
            )
            if kind == TimetableKind.class_timetable and not required_duration:
                for number, (mode, minutes) in enumerate(sessions_for_credits(unit.credit_hours), start=1):
                    items.append(replace(base, session_number=number, teaching_mode=mode, required_duration=minutes))
            else:
                items.append(base)
        logger.debug("Derived %d %s item(s) for semester %s", len(items), kind.value, self.semester_id)
        return items

    def item_for(
        self,
        kind: TimetableKind,
        unit_id: int,
        class_ids: Iterable[int],
        *,
        required_duration: int = 0,
        session_number: int = 1,
    ) -> SchedulableItem:
        """Rebuild a single item from current catalog state (used for retries)."""
        identity = (unit_id, tuple(sorted(class_ids)), session_number)
        for item in self.worklist(kind, required_duration=required_duration, unit_ids=[unit_id]):
            if item.identity == identity:
                return item
        raise WorklistError(
            "Unit/class combination is no longer schedulable",
            details={"unit_id": unit_id, "class_ids": list(identity[1]), "session_number": session_number},
        )

    def _session_query(self, kind: TimetableKind, *, locked_only: bool):
        query = select(ScheduledSession).where(
            ScheduledSession.semester_id == self.semester_id,
            ScheduledSession.kind == kind,
        )
        if locked_only:
            query = query.where(ScheduledSession.is_locked.is_(True))
        return query

    def booked_placements(self, kind: TimetableKind, *, locked_only: bool = False) -> list[Placement]:
        query = self._session_query(kind, locked_only=locked_only).order_by(ScheduledSession.created_at, ScheduledSession.id)
        sessions = list(self.db.execute(query).scalars())
        venue_ids = {session.venue_id for session in sessions if session.venue_id is not None}
        venues = {
            venue.id: venue_info(venue)
            for venue in self.db.execute(select(Venue).where(Venue.id.in_(venue_ids))).scalars()
        }
        return [placement_from_session(session, venues.get(session.venue_id)) for session in sessions]

    def delete_unlocked_sessions(self, kind: TimetableKind) -> int:
        result = self.db.execute(
            delete(ScheduledSession).where(
                ScheduledSession.semester_id == self.semester_id,
                ScheduledSession.kind == kind,
                ScheduledSession.is_locked.is_(False),
            )
        )
        return result.rowcount or 0


def placement_from_session(session: ScheduledSession, venue: VenueInfo | None = None) -> Placement:
    class_ids = tuple(session.class_ids or ())
    mode = TeachingMode(session.teaching_mode or TeachingMode.physical.value)
    group = PerClass(class_ids[0]) if len(class_ids) == 1 else Shared(class_ids)
    item = SchedulableItem(
        unit_id=session.unit_id,
        unit_code=session.unit_code,
        unit_name="",
        semester_id=session.semester_id,
        class_group=group,
        student_count=session.student_count,
        lecturer_code=session.lecturer_code,
        credit_hours=session.credit_hours,
        program_id=session.program_id,
        school_id=session.school_id,
        session_number=session.session_number or 1,
        teaching_mode=mode,
    )
    slot = CandidateSlot(
        day=session.day,
        day_index=day_index(session.day),
        start=parse_time_to_minutes(session.start_time),
        end=parse_time_to_minutes(session.end_time),
        date=session.session_date,
        slot_number=session.slot_number,
        time_slot_id=session.time_slot_id,
        teaching_mode=mode,
    )
    if session.venue_id is None:
        venue = ONLINE_VENUE
    elif venue is None:
        venue = VenueInfo(id=session.venue_id, code=session.venue_code, capacity=session.student_count)
    return Placement(item=item, slot=slot, venue=venue, id=session.id, carried_over=True)
