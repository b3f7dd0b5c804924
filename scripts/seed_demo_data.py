"""Seed a demo semester with classes, units, enrollments and venues.

Run:
  PYTHONPATH=backend python scripts/seed_demo_data.py
"""

from __future__ import annotations

import os

from sqlalchemy import func, select

from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.models.enrollment import Enrollment
from app.models.lecturer_workload_limit import LecturerWorkloadLimit
from app.models.school_class import SchoolClass
from app.models.semester import Semester
from app.models.time_slot import LearningMode, TimeSlot
from app.models.unit import Unit
from app.models.unit_assignment import UnitAssignment
from app.models.venue import Venue, VenueType

SEMESTER_NAME = os.getenv("SEED_SEMESTER_NAME", "Sep-Dec 2026").strip() or "Sep-Dec 2026"
ACADEMIC_YEAR = os.getenv("SEED_ACADEMIC_YEAR", "2026/2027").strip() or "2026/2027"
PROGRAM_ID = 1
SCHOOL_ID = 1
WORKING_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
TEACHING_BLOCKS = [("08:00", "10:00"), ("10:00", "12:00"), ("13:00", "15:00"), ("15:00", "17:00")]
ONLINE_BLOCKS = [("18:00", "19:00"), ("19:00", "20:00")]

VENUES = [
    ("EXH-A", "Examination Hall A", "Main", 120, VenueType.examroom),
    ("EXH-B", "Examination Hall B", "Main", 80, VenueType.examroom),
    ("EX-201", "Exam Room 201", "Science", 45, VenueType.examroom),
    ("LH-1", "Lecture Hall 1", "Main", 100, VenueType.classroom),
    ("LH-2", "Lecture Hall 2", "Main", 60, VenueType.classroom),
    ("CR-105", "Classroom 105", "Science", 40, VenueType.classroom),
]

# (name, section, student count)
CLASSES = [
    ("BSCS 1.1", "A", 42),
    ("BSCS 1.1", "B", 38),
    ("BBIT 1.1", None, 55),
]

# (code, name, credit hours, lecturer, class keys or None for a common unit)
UNITS = [
    ("BCS101", "Communication Skills", 3, "L-OTIENO", None),
    ("BCS110", "Introduction to Programming", 4, "L-WANJIKU", [("BSCS 1.1", "A")]),
    ("BCS111", "Discrete Mathematics", 3, "L-WANJIKU", [("BSCS 1.1", "B")]),
    ("BIT110", "Information Systems", 3, "L-KAMAU", [("BBIT 1.1", None)]),
    ("BIT112", "Business Computing", 3, "L-KAMAU", [("BBIT 1.1", None)]),
    ("BMA101", "Calculus I", 4, "L-ACHIENG", [("BSCS 1.1", "A"), ("BSCS 1.1", "B")]),
]

WORKLOAD_LIMITS = {"L-WANJIKU": (4, 14), "L-KAMAU": (5, 18)}


def upsert_semester(session) -> Semester:
    semester = session.execute(select(Semester).where(Semester.name == SEMESTER_NAME)).scalar_one_or_none()
    if semester is None:
        semester = Semester(name=SEMESTER_NAME, intake_type="September", academic_year=ACADEMIC_YEAR, is_active=True)
        session.add(semester)
        session.flush()
    return semester


def upsert_venues(session) -> None:
    existing = {venue.code for venue in session.execute(select(Venue)).scalars()}
    for code, name, building, capacity, venue_type in VENUES:
        if code in existing:
            continue
        session.add(Venue(code=code, name=name, building=building, capacity=capacity, type=venue_type, is_active=True))


def upsert_time_slots(session) -> None:
    existing = {(slot.day, slot.start_time) for slot in session.execute(select(TimeSlot)).scalars()}
    for day in WORKING_DAYS:
        for start_time, end_time in TEACHING_BLOCKS:
            if (day, start_time) in existing:
                continue
            session.add(TimeSlot(day=day, start_time=start_time, end_time=end_time, status=LearningMode.physical))
        for start_time, end_time in ONLINE_BLOCKS:
            if (day, start_time) in existing:
                continue
            session.add(TimeSlot(day=day, start_time=start_time, end_time=end_time, status=LearningMode.online))


def upsert_classes(session, semester: Semester) -> dict[tuple[str, str | None], SchoolClass]:
    classes: dict[tuple[str, str | None], SchoolClass] = {}
    for name, section, _ in CLASSES:
        school_class = session.execute(
            select(SchoolClass).where(
                SchoolClass.semester_id == semester.id,
                SchoolClass.name == name,
                SchoolClass.section.is_(None) if section is None else SchoolClass.section == section,
            )
        ).scalar_one_or_none()
        if school_class is None:
            school_class = SchoolClass(
                name=name,
                section=section,
                semester_id=semester.id,
                program_id=PROGRAM_ID,
                school_id=SCHOOL_ID,
            )
            session.add(school_class)
            session.flush()
        classes[(name, section)] = school_class
    return classes


def roster_for(school_class: SchoolClass, size: int) -> list[str]:
    prefix = school_class.name.replace(" ", "").replace(".", "")
    section = school_class.section or "X"
    return [f"{prefix}{section}-{number:03d}" for number in range(1, size + 1)]


def upsert_units_and_enrollments(session, semester: Semester, classes: dict) -> None:
    sizes = {(name, section): size for name, section, size in CLASSES}
    for code, name, credit_hours, lecturer_code, class_keys in UNITS:
        unit = session.execute(select(Unit).where(Unit.code == code)).scalar_one_or_none()
        if unit is None:
            unit = Unit(code=code, name=name, credit_hours=credit_hours, program_id=PROGRAM_ID, school_id=SCHOOL_ID)
            session.add(unit)
            session.flush()

        targets = [None] if class_keys is None else [classes[key] for key in class_keys]
        for school_class in targets:
            class_id = school_class.id if school_class is not None else None
            assignment = session.execute(
                select(UnitAssignment).where(
                    UnitAssignment.unit_id == unit.id,
                    UnitAssignment.semester_id == semester.id,
                    UnitAssignment.class_id.is_(None) if class_id is None else UnitAssignment.class_id == class_id,
                )
            ).scalar_one_or_none()
            if assignment is None:
                session.add(
                    UnitAssignment(
                        unit_id=unit.id,
                        semester_id=semester.id,
                        class_id=class_id,
                        program_id=PROGRAM_ID,
                        lecturer_code=lecturer_code,
                        is_active=True,
                    )
                )

        enrolled_classes = list(classes.values()) if class_keys is None else targets
        for school_class in enrolled_classes:
            already = set(
                session.execute(
                    select(Enrollment.student_code).where(
                        Enrollment.unit_id == unit.id,
                        Enrollment.semester_id == semester.id,
                    )
                ).scalars()
            )
            size = sizes[(school_class.name, school_class.section)]
            for student_code in roster_for(school_class, size):
                if student_code in already:
                    continue
                session.add(
                    Enrollment(
                        student_code=student_code,
                        class_id=school_class.id,
                        unit_id=unit.id,
                        semester_id=semester.id,
                    )
                )
        session.flush()


def upsert_workload_limits(session, semester: Semester) -> None:
    for lecturer_code, (max_units, max_credit_hours) in WORKLOAD_LIMITS.items():
        limit = session.execute(
            select(LecturerWorkloadLimit).where(
                LecturerWorkloadLimit.semester_id == semester.id,
                LecturerWorkloadLimit.lecturer_code == lecturer_code,
            )
        ).scalar_one_or_none()
        if limit is None:
            session.add(
                LecturerWorkloadLimit(
                    lecturer_code=lecturer_code,
                    semester_id=semester.id,
                    max_units=max_units,
                    max_credit_hours=max_credit_hours,
                )
            )


def main() -> None:
    ensure_runtime_schema_compatibility()
    with SessionLocal() as session:
        semester = upsert_semester(session)
        upsert_venues(session)
        upsert_time_slots(session)
        classes = upsert_classes(session, semester)
        upsert_units_and_enrollments(session, semester, classes)
        upsert_workload_limits(session, semester)
        session.commit()

        enrollments = session.execute(
            select(func.count(Enrollment.id)).where(Enrollment.semester_id == semester.id)
        ).scalar_one()
        print(f"Seeded semester {semester.name} (id={semester.id})")
        print(f"Classes: {len(classes)}  Units: {len(UNITS)}  Enrollments: {enrollments}")
        print(f"Venues: {len(VENUES)}  Teaching blocks: {len(WORKING_DAYS) * (len(TEACHING_BLOCKS) + len(ONLINE_BLOCKS))}")


if __name__ == "__main__":
    main()
