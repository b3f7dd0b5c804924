from dataclasses import replace
from datetime import date

import pytest

from app.services.conflict_service import ConflictService, check_placement
from app.services.scheduling_types import (
    ONLINE_VENUE,
    BookedSet,
    CandidateSlot,
    CheckPolicy,
    ConflictKind,
    PerClass,
    Placement,
    SchedulableItem,
    Shared,
    TeachingMode,
    VenueInfo,
)
from app.services.workload import WorkloadLimit, WorkloadState

MONDAY = date(2026, 11, 2)


def make_item(unit_id, code, class_ids, students=40, lecturer="L001", credit_hours=3):
    group = PerClass(class_ids[0]) if len(class_ids) == 1 else Shared(tuple(class_ids))
    return SchedulableItem(
        unit_id=unit_id,
        unit_code=code,
        unit_name=f"Unit {code}",
        semester_id=1,
        class_group=group,
        student_count=students,
        lecturer_code=lecturer,
        credit_hours=credit_hours,
    )


def make_slot(start=540, end=660, exam_date=MONDAY):
    return CandidateSlot(day="Monday", day_index=0, start=start, end=end, date=exam_date, slot_number=1)


@pytest.fixture
def hall():
    return VenueInfo(id=1, code="HALL", capacity=45)


@pytest.fixture
def lab():
    return VenueInfo(id=2, code="LAB", capacity=60)


def test_capacity_exceeded(hall):
    candidate = Placement(item=make_item(1, "U1", [1], students=50), slot=make_slot(), venue=hall)
    result = check_placement(candidate, BookedSet(), WorkloadState())
    assert not result.ok
    assert result.first.kind == ConflictKind.capacity_exceeded
    assert "capacity (45) < students (50)" in result.first.message


def test_venue_conflict_on_overlap_only(hall):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=make_slot(), venue=hall, id="p1")])

    overlapping = Placement(item=make_item(2, "U2", [2], lecturer="L2"), slot=make_slot(600, 720), venue=hall)
    result = check_placement(overlapping, booked, WorkloadState())
    assert result.first.kind == ConflictKind.venue_conflict
    assert result.first.conflicting_placement_id == "p1"
    assert result.first.conflicting_unit_code == "U1"

    # [start, end) ranges that only touch do not clash.
    touching = Placement(item=make_item(2, "U2", [2], lecturer="L2"), slot=make_slot(660, 780), venue=hall)
    assert check_placement(touching, booked, WorkloadState()).ok

    other_day = Placement(
        item=make_item(2, "U2", [2], lecturer="L2"),
        slot=make_slot(exam_date=date(2026, 11, 3)),
        venue=hall,
    )
    assert check_placement(other_day, booked, WorkloadState()).ok


def test_lecturer_conflict_in_other_venue(hall, lab):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1]), slot=make_slot(), venue=hall)])
    candidate = Placement(item=make_item(2, "U2", [2]), slot=make_slot(), venue=lab)
    result = check_placement(candidate, booked, WorkloadState())
    assert result.first.kind == ConflictKind.lecturer_conflict
    assert result.first.resource_id == "L001"


def test_shared_invigilation_allows_same_unit_sections(hall, lab):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1]), slot=make_slot(), venue=hall)])
    second_section = Placement(item=make_item(1, "U1", [2]), slot=make_slot(), venue=lab)

    assert check_placement(second_section, booked, WorkloadState()).first.kind == ConflictKind.lecturer_conflict
    assert check_placement(second_section, booked, WorkloadState(), CheckPolicy(shared_invigilation=True)).ok


def test_student_overlap_through_shared_class(hall, lab):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1, 2], lecturer="L1"), slot=make_slot(), venue=hall)])
    candidate = Placement(item=make_item(2, "U2", [2], lecturer="L2"), slot=make_slot(), venue=lab)
    result = check_placement(candidate, booked, WorkloadState())
    assert result.first.kind == ConflictKind.student_overlap
    assert result.first.resource_type == "class"
    assert result.first.resource_id == "2"


def test_student_overlap_through_enrolled_students(hall, lab):
    policy = CheckPolicy(class_students={1: frozenset({"S1", "S2"}), 2: frozenset({"S2", "S3"})})
    booked = BookedSet([Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=make_slot(), venue=hall)])
    candidate = Placement(item=make_item(2, "U2", [2], lecturer="L2"), slot=make_slot(), venue=lab)

    result = check_placement(candidate, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.student_overlap
    assert result.first.resource_type == "student"
    assert result.first.resource_id == "S2"


def test_workload_limit_exceeded(hall):
    workload = WorkloadState(limits={"L001": WorkloadLimit(max_units=1, max_credit_hours=18)})
    workload.assign(make_item(9, "U9", [5]))
    candidate = Placement(item=make_item(1, "U1", [1]), slot=make_slot(), venue=hall)

    result = check_placement(candidate, BookedSet(), workload)
    assert result.first.kind == ConflictKind.workload_limit_exceeded
    assert "unit count 2 exceeds limit 1" in result.first.message


def test_daily_load_limit(hall, lab):
    policy = CheckPolicy(max_sessions_per_class_per_day=1)
    booked = BookedSet([Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=make_slot(540, 660), venue=hall)])
    later = Placement(item=make_item(2, "U2", [1], lecturer="L2"), slot=make_slot(690, 810), venue=lab)

    assert check_placement(later, booked, WorkloadState()).ok
    result = check_placement(later, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.daily_load_exceeded


def test_collect_all_reports_every_failing_check_in_order(hall):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1]), slot=make_slot(), venue=hall)])
    candidate = Placement(item=make_item(2, "U2", [1], students=50), slot=make_slot(), venue=hall)

    first_only = check_placement(candidate, booked, WorkloadState())
    assert first_only.kinds == (ConflictKind.capacity_exceeded,)

    everything = check_placement(candidate, booked, WorkloadState(), collect_all=True)
    assert everything.kinds == (
        ConflictKind.capacity_exceeded,
        ConflictKind.venue_conflict,
        ConflictKind.lecturer_conflict,
        ConflictKind.student_overlap,
    )


def test_check_does_not_mutate_inputs(hall):
    booked = BookedSet([Placement(item=make_item(1, "U1", [1]), slot=make_slot(), venue=hall)])
    workload = WorkloadState()
    candidate = Placement(item=make_item(2, "U2", [2], lecturer="L2"), slot=make_slot(720, 840), venue=hall)

    assert check_placement(candidate, booked, workload).ok
    assert len(booked) == 1
    assert workload.unit_count("L2") == 0


def test_detect_conflicts_audits_committed_timetable(hall, lab):
    placements = [
        Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=make_slot(), venue=hall, id="a"),
        Placement(item=make_item(2, "U2", [2], lecturer="L1"), slot=make_slot(600, 720), venue=hall, id="b"),
        Placement(item=make_item(3, "U3", [3], lecturer="L3"), slot=make_slot(), venue=lab, id="c"),
    ]
    conflicts = ConflictService(placements).detect_conflicts()
    kinds = sorted(conflict.kind.value for conflict in conflicts)
    assert kinds == ["LecturerConflict", "VenueConflict"]


def weekly_slot(start, end, mode=TeachingMode.physical):
    return CandidateSlot(day="Monday", day_index=0, start=start, end=end, teaching_mode=mode)


def session_item(unit_id, code, class_ids, number, mode, lecturer="L001"):
    return replace(make_item(unit_id, code, class_ids, lecturer=lecturer), session_number=number, teaching_mode=mode)


def test_online_venue_skips_capacity_and_venue_checks():
    booked = BookedSet(
        [Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=weekly_slot(1080, 1140, TeachingMode.online), venue=ONLINE_VENUE)]
    )
    candidate = Placement(
        item=make_item(2, "U2", [2], students=500, lecturer="L2"),
        slot=weekly_slot(1080, 1140, TeachingMode.online),
        venue=ONLINE_VENUE,
    )

    assert check_placement(candidate, booked, WorkloadState()).ok


def test_sessions_of_one_unit_cannot_overlap_for_the_same_class(hall):
    booked = BookedSet([Placement(item=session_item(1, "U1", [1], 1, TeachingMode.physical), slot=weekly_slot(480, 600), venue=hall)])
    online = Placement(
        item=session_item(1, "U1", [1], 2, TeachingMode.online, lecturer="L2"),
        slot=weekly_slot(540, 600, TeachingMode.online),
        venue=ONLINE_VENUE,
    )

    result = check_placement(online, booked, WorkloadState())
    assert result.first.kind == ConflictKind.student_overlap


def test_rest_time_between_back_to_back_sessions(hall, lab):
    policy = CheckPolicy(min_rest_minutes=15)
    booked = BookedSet([Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=weekly_slot(480, 600), venue=hall, id="p1")])

    same_lecturer = Placement(item=make_item(2, "U2", [2], lecturer="L1"), slot=weekly_slot(600, 720), venue=lab)
    result = check_placement(same_lecturer, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.insufficient_rest
    assert result.first.resource_type == "lecturer"
    assert result.first.conflicting_placement_id == "p1"

    same_class_before = Placement(item=make_item(3, "U3", [1], lecturer="L3"), slot=weekly_slot(360, 470), venue=lab)
    result = check_placement(same_class_before, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.insufficient_rest
    assert result.first.resource_type == "class"
    assert "10 minute(s)" in result.first.message

    rested = Placement(item=make_item(2, "U2", [1], lecturer="L1"), slot=weekly_slot(615, 735), venue=lab)
    assert check_placement(rested, booked, WorkloadState(), policy).ok

    unrelated = Placement(item=make_item(4, "U4", [4], lecturer="L4"), slot=weekly_slot(600, 720), venue=lab)
    assert check_placement(unrelated, booked, WorkloadState(), policy).ok


def test_daily_physical_cap_leaves_room_for_online(hall, lab):
    policy = CheckPolicy(max_physical_per_class_per_day=2)
    booked = BookedSet(
        [
            Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=weekly_slot(480, 600), venue=hall),
            Placement(item=make_item(2, "U2", [1], lecturer="L2"), slot=weekly_slot(660, 780), venue=hall),
        ]
    )

    third = Placement(item=make_item(3, "U3", [1], lecturer="L3"), slot=weekly_slot(840, 960), venue=lab)
    result = check_placement(third, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.daily_load_exceeded
    assert "2 physical session(s)" in result.first.message

    online = Placement(
        item=session_item(3, "U3", [1], 2, TeachingMode.online, lecturer="L3"),
        slot=weekly_slot(1080, 1140, TeachingMode.online),
        venue=ONLINE_VENUE,
    )
    assert check_placement(online, booked, WorkloadState(), policy).ok


def test_daily_teaching_minutes_cap(hall):
    policy = CheckPolicy(max_minutes_per_class_per_day=300)
    booked = BookedSet(
        [
            Placement(item=make_item(1, "U1", [1], lecturer="L1"), slot=weekly_slot(480, 600), venue=hall),
            Placement(item=make_item(2, "U2", [1], lecturer="L2"), slot=weekly_slot(660, 780), venue=hall),
        ]
    )
    one_hour = Placement(
        item=session_item(3, "U3", [1], 2, TeachingMode.online, lecturer="L3"),
        slot=weekly_slot(840, 900, TeachingMode.online),
        venue=ONLINE_VENUE,
    )
    two_hours = Placement(
        item=session_item(3, "U3", [1], 2, TeachingMode.online, lecturer="L3"),
        slot=weekly_slot(840, 960, TeachingMode.online),
        venue=ONLINE_VENUE,
    )

    assert check_placement(one_hour, booked, WorkloadState(), policy).ok
    result = check_placement(two_hours, booked, WorkloadState(), policy)
    assert result.first.kind == ConflictKind.daily_load_exceeded
    assert "360 minute(s)" in result.first.message
