from datetime import date
from itertools import count

from app.services.scheduling_calendar import build_candidates
from app.services.scheduling_types import (
    BookedSet,
    CandidateSlot,
    CheckPolicy,
    ConflictKind,
    PerClass,
    SchedulableItem,
    TeachingMode,
    VenueInfo,
)
from app.services.slot_allocator import allocate, order_items, plan_batch
from app.services.workload import WorkloadState

MONDAY = date(2026, 11, 2)
TUESDAY = date(2026, 11, 3)


def make_item(unit_id, code, class_id, students=40, lecturer="L001"):
    return SchedulableItem(
        unit_id=unit_id,
        unit_code=code,
        unit_name=f"Unit {code}",
        semester_id=1,
        class_group=PerClass(class_id),
        student_count=students,
        required_duration=120,
        lecturer_code=lecturer,
        credit_hours=3,
    )


def exam_slot(exam_date, start, number):
    return CandidateSlot(
        day=exam_date.strftime("%A"),
        day_index=exam_date.weekday(),
        start=start,
        end=start + 120,
        date=exam_date,
        slot_number=number,
    )


def sequential_ids():
    counter = count(1)
    return lambda: f"p{next(counter)}"


def test_same_class_same_lecturer_one_venue_cites_venue_conflict():
    candidates = build_candidates([exam_slot(MONDAY, 540, 1)], [VenueInfo(id=1, code="EX1", capacity=45)])
    items = [make_item(2, "UNITB", 1), make_item(1, "UNITA", 1)]

    outcomes = plan_batch(items, candidates, BookedSet(), WorkloadState(), placement_id=sequential_ids())

    assert [outcome.item.unit_code for outcome in outcomes] == ["UNITA", "UNITB"]
    placed, failed = outcomes
    assert placed.ok
    assert not failed.ok
    assert failed.failure_kind == ConflictKind.venue_conflict
    assert failed.best_attempt.slot.date == MONDAY
    assert failed.failure_reason.startswith("VenueConflict: ")


def test_same_class_same_lecturer_two_venues_cites_lecturer_conflict():
    venues = [VenueInfo(id=1, code="EX1", capacity=45), VenueInfo(id=2, code="EX2", capacity=45)]
    candidates = build_candidates([exam_slot(MONDAY, 540, 1)], venues)

    outcomes = plan_batch(
        [make_item(1, "UNITA", 1), make_item(2, "UNITB", 1)],
        candidates,
        BookedSet(),
        WorkloadState(),
        placement_id=sequential_ids(),
    )

    failed = outcomes[1]
    assert failed.failure_kind == ConflictKind.lecturer_conflict
    # The second venue got further than the first before failing.
    assert failed.best_attempt.venue.code == "EX2"
    assert set(failed.encountered) == {ConflictKind.venue_conflict, ConflictKind.lecturer_conflict}
    assert ConflictKind.student_overlap in {cause.kind for cause in failed.conflicts}


def test_no_venue_large_enough_fails_without_attempt():
    candidates = build_candidates([exam_slot(MONDAY, 540, 1)], [VenueInfo(id=1, code="EX1", capacity=45)])

    outcome = allocate(make_item(3, "UNITC", 2, students=50), candidates, BookedSet(), WorkloadState())

    assert not outcome.ok
    assert outcome.failure_kind == ConflictKind.no_venue_capacity
    assert outcome.best_attempt is None
    assert outcome.attempts == 0
    assert "largest capacity 45" in outcome.conflicts[0].message


def test_empty_calendar_is_no_available_slot():
    outcome = allocate(make_item(3, "UNITC", 2), [], BookedSet(), WorkloadState())

    assert outcome.failure_kind == ConflictKind.no_available_slot
    assert outcome.best_attempt is None
    assert outcome.conflicts[0].resource_type == "slot"


def test_slots_shorter_than_the_session_are_no_available_slot():
    short = CandidateSlot(day="Monday", day_index=0, start=540, end=600, date=MONDAY, slot_number=1)
    candidates = build_candidates([short], [VenueInfo(id=1, code="EX1", capacity=100)])

    outcome = allocate(make_item(3, "UNITC", 2), candidates, BookedSet(), WorkloadState())

    assert outcome.failure_kind == ConflictKind.no_available_slot
    assert "lasts 120 minutes (longest is 60)" in outcome.conflicts[0].message


def test_online_session_needs_an_online_slot_but_no_seats():
    physical = CandidateSlot(day="Monday", day_index=0, start=480, end=600)
    online = CandidateSlot(day="Monday", day_index=0, start=1080, end=1140, teaching_mode=TeachingMode.online)
    candidates = build_candidates([physical, online], [VenueInfo(id=1, code="LH1", capacity=10)])
    item = SchedulableItem(
        unit_id=7,
        unit_code="BCS110",
        unit_name="Programming",
        semester_id=1,
        class_group=PerClass(1),
        student_count=300,
        required_duration=60,
        session_number=2,
        teaching_mode=TeachingMode.online,
    )

    outcome = allocate(item, candidates, BookedSet(), WorkloadState())
    assert outcome.ok
    assert outcome.placement.venue.is_virtual
    assert outcome.placement.slot.start_time == "18:00"

    only_physical = build_candidates([physical], [VenueInfo(id=1, code="LH1", capacity=400)])
    missing = allocate(item, only_physical, BookedSet(), WorkloadState())
    assert missing.failure_kind == ConflictKind.no_available_slot
    assert "No online time slot" in missing.conflicts[0].message


def test_smallest_sufficient_venue_is_chosen_first():
    venues = [VenueInfo(id=1, code="BIG", capacity=200), VenueInfo(id=2, code="SMALL", capacity=50)]
    candidates = build_candidates([exam_slot(MONDAY, 540, 1)], venues)

    outcome = allocate(make_item(1, "U1", 1), candidates, BookedSet(), WorkloadState())

    assert outcome.placement.venue.code == "SMALL"


def test_largest_items_are_placed_first():
    items = [make_item(1, "A", 1, students=10), make_item(2, "B", 2, students=90), make_item(3, "C", 3, students=40)]
    assert [item.unit_code for item in order_items(items)] == ["B", "C", "A"]


def test_already_placed_item_is_skipped():
    candidates = build_candidates([exam_slot(MONDAY, 540, 1)], [VenueInfo(id=1, code="EX1", capacity=45)])
    booked = BookedSet()
    first = allocate(make_item(1, "U1", 1), candidates, booked, WorkloadState())

    again = allocate(make_item(1, "U1", 1), candidates, booked, WorkloadState())

    assert again.ok
    assert again.skipped
    assert again.placement is first.placement
    assert len(booked) == 1


def test_cancellation_marks_remaining_items():
    candidates = build_candidates(
        [exam_slot(MONDAY, 540, 1), exam_slot(TUESDAY, 540, 1)],
        [VenueInfo(id=1, code="EX1", capacity=100)],
    )
    checks = count()
    outcomes = plan_batch(
        [make_item(index, f"U{index}", index, students=50 - index) for index in range(1, 5)],
        candidates,
        BookedSet(),
        WorkloadState(),
        is_cancelled=lambda: next(checks) >= 1,
    )

    assert outcomes[0].ok
    assert [outcome.failure_kind for outcome in outcomes[1:]] == [ConflictKind.batch_cancelled] * 3


def _scenario():
    slots = [exam_slot(day, start, number) for day in (MONDAY, TUESDAY) for number, start in ((1, 540), (2, 690))]
    venues = [VenueInfo(id=1, code="EX1", capacity=60), VenueInfo(id=2, code="EX2", capacity=35)]
    items = [
        make_item(1, "CS101", 1, students=55, lecturer="L1"),
        make_item(2, "CS102", 1, students=55, lecturer="L2"),
        make_item(3, "MA101", 2, students=30, lecturer="L1"),
        make_item(4, "MA102", 2, students=30, lecturer="L3"),
        make_item(5, "PH101", 3, students=30, lecturer="L1"),
        make_item(6, "PH102", 3, students=70, lecturer="L4"),
    ]
    policy = CheckPolicy(shared_invigilation=True)
    return items, build_candidates(slots, venues), policy


def test_batch_output_is_complete_and_free_of_double_booking():
    items, candidates, policy = _scenario()
    outcomes = plan_batch(items, candidates, BookedSet(), WorkloadState(), policy, placement_id=sequential_ids())

    assert len(outcomes) == len(items)
    placements = [outcome.placement for outcome in outcomes if outcome.ok]
    for index, first in enumerate(placements):
        assert first.student_count <= first.venue.capacity
        for second in placements[index + 1:]:
            if not first.overlaps(second):
                continue
            assert first.venue.id != second.venue.id
            assert first.lecturer_code != second.lecturer_code
            assert not set(first.item.class_ids) & set(second.item.class_ids)

    failed = {outcome.item.unit_code: outcome.failure_kind for outcome in outcomes if not outcome.ok}
    assert failed["PH102"] == ConflictKind.no_venue_capacity


def test_batch_is_deterministic():
    items, candidates, policy = _scenario()
    first = plan_batch(items, candidates, BookedSet(), WorkloadState(), policy, placement_id=sequential_ids())
    second = plan_batch(
        list(reversed(items)),
        list(reversed(candidates)),
        BookedSet(),
        WorkloadState(),
        policy,
        placement_id=sequential_ids(),
    )

    def summarize(outcomes):
        return [
            (outcome.item.identity, outcome.placement.signature() if outcome.ok else outcome.failure_kind)
            for outcome in outcomes
        ]

    assert summarize(first) == summarize(second)
