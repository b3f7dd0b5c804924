from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable

from app.services.scheduling_types import (
    OK,
    BookedSet,
    CheckPolicy,
    ConflictCause,
    ConflictKind,
    ConflictResult,
    Placement,
    TeachingMode,
    VenueInfo,
)
from app.services.workload import WorkloadState


def _cause_against(kind: ConflictKind, message: str, other: Placement, *, resource_type: str, resource_id: str) -> ConflictCause:
    return ConflictCause(
        kind=kind,
        message=message,
        resource_type=resource_type,
        resource_id=resource_id,
        conflicting_placement_id=other.id or None,
        conflicting_unit_code=other.item.unit_code,
        date=other.calendar_key,
        start_time=other.slot.start_time,
        end_time=other.slot.end_time,
    )


def check_capacity(candidate: Placement, venue: VenueInfo) -> list[ConflictCause]:
    if venue.is_virtual or candidate.student_count <= venue.capacity:
        return []
    return [
        ConflictCause(
            kind=ConflictKind.capacity_exceeded,
            message=f"Venue {venue.code} capacity ({venue.capacity}) < students ({candidate.student_count})",
            resource_type="venue",
            resource_id=str(venue.id),
        )
    ]


def check_venue(candidate: Placement, booked: BookedSet) -> list[ConflictCause]:
    if candidate.venue.is_virtual:
        return []
    causes = []
    for other in booked.on(candidate.calendar_key):
        if other.venue.id == candidate.venue.id and candidate.overlaps(other):
            causes.append(
                _cause_against(
                    ConflictKind.venue_conflict,
                    f"Venue {candidate.venue.code} already holds {other.item.unit_code} "
                    f"on {other.calendar_key} {other.slot.start_time}-{other.slot.end_time}",
                    other,
                    resource_type="venue",
                    resource_id=str(candidate.venue.id),
                )
            )
    return causes


def check_lecturer(candidate: Placement, booked: BookedSet, policy: CheckPolicy) -> list[ConflictCause]:
    lecturer = candidate.lecturer_code
    if not lecturer:
        return []
    causes = []
    for other in booked.on(candidate.calendar_key):
        if other.lecturer_code != lecturer or not candidate.overlaps(other):
            continue
        if policy.shared_invigilation and other.item.unit_id == candidate.item.unit_id:
            continue
        causes.append(
            _cause_against(
                ConflictKind.lecturer_conflict,
                f"Lecturer {lecturer} already has {other.item.unit_code} "
                f"on {other.calendar_key} {other.slot.start_time}-{other.slot.end_time}",
                other,
                resource_type="lecturer",
                resource_id=lecturer,
            )
        )
    return causes


def _same_session(candidate: Placement, other: Placement) -> bool:
    return other.item.unit_id == candidate.item.unit_id and other.item.session_number == candidate.item.session_number


def check_students(candidate: Placement, booked: BookedSet, policy: CheckPolicy) -> list[ConflictCause]:
    """Class membership is transitive: classes sharing a student clash too."""
    candidate_classes = set(candidate.item.class_ids)
    candidate_students = policy.students_of(candidate_classes)
    causes = []
    for other in booked.on(candidate.calendar_key):
        if _same_session(candidate, other) or not candidate.overlaps(other):
            continue
        shared_classes = candidate_classes.intersection(other.item.class_ids)
        if shared_classes:
            class_id = min(shared_classes)
            causes.append(
                _cause_against(
                    ConflictKind.student_overlap,
                    f"Class {class_id} already sits {other.item.unit_code} "
                    f"on {other.calendar_key} {other.slot.start_time}-{other.slot.end_time}",
                    other,
                    resource_type="class",
                    resource_id=str(class_id),
                )
            )
            continue
        common_students = candidate_students & policy.students_of(other.item.class_ids)
        if common_students:
            student = min(common_students)
            causes.append(
                _cause_against(
                    ConflictKind.student_overlap,
                    f"{len(common_students)} student(s) (e.g. {student}) already sit {other.item.unit_code} "
                    f"on {other.calendar_key} {other.slot.start_time}-{other.slot.end_time}",
                    other,
                    resource_type="student",
                    resource_id=student,
                )
            )
    return causes


def check_workload(candidate: Placement, workload: WorkloadState) -> list[ConflictCause]:
    breach = workload.exceeded(candidate.item)
    if breach is None:
        return []
    return [
        ConflictCause(
            kind=ConflictKind.workload_limit_exceeded,
            message=f"Lecturer {candidate.lecturer_code} workload limit reached: {breach}",
            resource_type="lecturer",
            resource_id=candidate.lecturer_code,
        )
    ]


def _rest_gap(candidate: Placement, other: Placement) -> int | None:
    """Minutes between two sessions on the same day; None when they overlap."""
    if candidate.overlaps(other):
        return None
    if candidate.slot.start >= other.slot.end:
        return candidate.slot.start - other.slot.end
    return other.slot.start - candidate.slot.end


def check_rest(candidate: Placement, booked: BookedSet, policy: CheckPolicy) -> list[ConflictCause]:
    minimum = policy.min_rest_minutes
    if not minimum:
        return []
    lecturer = candidate.lecturer_code
    candidate_classes = set(candidate.item.class_ids)
    causes = []
    for other in booked.on(candidate.calendar_key):
        gap = _rest_gap(candidate, other)
        if gap is None or gap >= minimum:
            continue
        if lecturer and other.lecturer_code == lecturer:
            resource_type, resource_id, who = "lecturer", lecturer, f"Lecturer {lecturer}"
        elif candidate_classes.intersection(other.item.class_ids):
            class_id = min(candidate_classes.intersection(other.item.class_ids))
            resource_type, resource_id, who = "class", str(class_id), f"Class {class_id}"
        else:
            continue
        causes.append(
            _cause_against(
                ConflictKind.insufficient_rest,
                f"{who} has {gap} minute(s) between this session and {other.item.unit_code} "
                f"on {other.calendar_key} {other.slot.start_time}-{other.slot.end_time}; {minimum} required",
                other,
                resource_type=resource_type,
                resource_id=resource_id,
            )
        )
    return causes


def _daily_load_cause(class_id: int, calendar_key: str, message: str) -> ConflictCause:
    return ConflictCause(
        kind=ConflictKind.daily_load_exceeded,
        message=message,
        resource_type="class",
        resource_id=str(class_id),
        date=calendar_key,
    )


def check_daily_load(candidate: Placement, booked: BookedSet, policy: CheckPolicy) -> list[ConflictCause]:
    day = candidate.calendar_key
    physical = candidate.slot.teaching_mode == TeachingMode.physical
    causes = []
    for class_id in candidate.item.class_ids:
        sessions = booked.class_sessions_on(class_id, day)
        limit = policy.max_sessions_per_class_per_day
        if limit is not None and len(sessions) >= limit:
            causes.append(
                _daily_load_cause(class_id, day, f"Class {class_id} already has {len(sessions)} session(s) on {day}")
            )
            continue
        limit = policy.max_physical_per_class_per_day
        if physical and limit is not None:
            count = sum(1 for other in sessions if other.slot.teaching_mode == TeachingMode.physical)
            if count >= limit:
                causes.append(
                    _daily_load_cause(class_id, day, f"Class {class_id} already has {count} physical session(s) on {day}")
                )
                continue
        limit = policy.max_minutes_per_class_per_day
        if limit is not None:
            minutes = sum(other.slot.duration for other in sessions) + candidate.slot.duration
            if minutes > limit:
                causes.append(
                    _daily_load_cause(
                        class_id,
                        day,
                        f"Class {class_id} would be taught {minutes} minute(s) on {day}; limit is {limit}",
                    )
                )
    return causes


def check_placement(
    candidate: Placement,
    booked: BookedSet,
    workload: WorkloadState,
    policy: CheckPolicy | None = None,
    *,
    venue: VenueInfo | None = None,
    collect_all: bool = False,
) -> ConflictResult:
    """Evaluate a candidate against the booked set. Pure; never mutates inputs.

    Checks run in CHECK_ORDER: capacity, venue, lecturer, students, rest,
    workload, then daily load. The first failing check wins unless ``collect_all`` is set.
    """
    policy = policy or CheckPolicy()
    venue = venue or candidate.venue
    checks: list[Callable[[], list[ConflictCause]]] = [
        lambda: check_capacity(candidate, venue),
        lambda: check_venue(candidate, booked),
        lambda: check_lecturer(candidate, booked, policy),
        lambda: check_students(candidate, booked, policy),
        lambda: check_rest(candidate, booked, policy),
        lambda: check_workload(candidate, workload),
        lambda: check_daily_load(candidate, booked, policy),
    ]
    causes: list[ConflictCause] = []
    for check in checks:
        found = check()
        if not found:
            continue
        causes.extend(found)
        if not collect_all:
            break
    if not causes:
        return OK
    return ConflictResult(causes=tuple(causes))


class ConflictService:
    """Audits a committed timetable for pairwise hard-constraint violations."""

    def __init__(self, placements: Iterable[Placement], policy: CheckPolicy | None = None):
        self.placements = list(placements)
        self.policy = policy or CheckPolicy()

    def detect_conflicts(self) -> list[ConflictCause]:
        conflicts: list[ConflictCause] = []

        slots_by_day: dict[str, list[Placement]] = defaultdict(list)
        for placement in self.placements:
            slots_by_day[placement.calendar_key].append(placement)

        for day_placements in slots_by_day.values():
            n = len(day_placements)
            for i in range(n):
                first = day_placements[i]
                conflicts.extend(check_capacity(first, first.venue))
                for j in range(i + 1, n):
                    second = day_placements[j]
                    if not first.overlaps(second):
                        continue
                    pair = BookedSet([second])
                    conflicts.extend(check_venue(first, pair))
                    conflicts.extend(check_lecturer(first, pair, self.policy))
                    conflicts.extend(check_students(first, pair, self.policy))
        return conflicts
