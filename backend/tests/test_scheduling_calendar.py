from datetime import date

import pytest

from app.core.exceptions import SchedulerError
from app.models.time_slot import LearningMode, TimeSlot
from app.services.scheduling_calendar import (
    available_dates,
    build_candidates,
    class_candidate_slots,
    exam_candidate_slots,
    generate_exam_slots,
)
from app.services.scheduling_types import ONLINE_VENUE, TeachingMode, VenueInfo


def test_available_dates_skip_weekends_and_excluded_days():
    dates = available_dates(date(2026, 11, 5), date(2026, 11, 11), ["Tue"])
    assert dates == [date(2026, 11, 5), date(2026, 11, 6), date(2026, 11, 9), date(2026, 11, 11)]


def test_available_dates_reject_reversed_window():
    with pytest.raises(SchedulerError):
        available_dates(date(2026, 11, 6), date(2026, 11, 2))


def test_generate_exam_slots_spacing():
    slots = generate_exam_slots("08:00", 120, 30, 3)
    assert [(slot.slot_number, slot.start, slot.end) for slot in slots] == [
        (1, 480, 600),
        (2, 630, 750),
        (3, 780, 900),
    ]


def test_generate_exam_slots_stop_at_midnight():
    slots = generate_exam_slots("20:00", 120, 30, 4)
    assert len(slots) == 1
    assert slots[0].end == 22 * 60


def test_exam_candidate_slots_carry_date_and_weekday():
    slots = exam_candidate_slots([date(2026, 11, 2)], generate_exam_slots("09:00", 90, 15, 2))
    assert [(slot.day, slot.start_time, slot.end_time, slot.slot_number) for slot in slots] == [
        ("Monday", "09:00", "10:30", 1),
        ("Monday", "10:45", "12:15", 2),
    ]
    assert all(slot.calendar_key == "2026-11-02" for slot in slots)


def test_class_candidate_slots_carry_teaching_mode():
    time_slots = [
        TimeSlot(id=1, day="Mon", start_time="09:00", end_time="11:00", status=LearningMode.physical),
        TimeSlot(id=2, day="Monday", start_time="11:00", end_time="13:00", status=LearningMode.online),
        TimeSlot(id=3, day="Tuesday", start_time="14:00:00", end_time="16:00:00", status=LearningMode.physical),
    ]
    slots = class_candidate_slots(time_slots)
    assert [(slot.day, slot.start, slot.end, slot.time_slot_id, slot.teaching_mode) for slot in slots] == [
        ("Monday", 540, 660, 1, TeachingMode.physical),
        ("Monday", 660, 780, 2, TeachingMode.online),
        ("Tuesday", 840, 960, 3, TeachingMode.physical),
    ]
    assert slots[0].calendar_key == "Monday"


def test_build_candidates_orders_by_time_then_capacity():
    slots = exam_candidate_slots([date(2026, 11, 3), date(2026, 11, 2)], generate_exam_slots("09:00", 60, 0, 2))
    venues = [VenueInfo(id=2, code="B", capacity=80), VenueInfo(id=1, code="A", capacity=30)]
    candidates = build_candidates(slots, venues)
    assert [(c.slot.calendar_key, c.slot.start_time, c.venue.code) for c in candidates[:4]] == [
        ("2026-11-02", "09:00", "A"),
        ("2026-11-02", "09:00", "B"),
        ("2026-11-02", "10:00", "A"),
        ("2026-11-02", "10:00", "B"),
    ]
    assert len(candidates) == 8


def test_online_slots_pair_with_online_venue_only():
    time_slots = [
        TimeSlot(id=1, day="Monday", start_time="08:00", end_time="10:00", status=LearningMode.physical),
        TimeSlot(id=2, day="Monday", start_time="18:00", end_time="19:00", status=LearningMode.online),
    ]
    venues = [VenueInfo(id=1, code="LH1", capacity=60), VenueInfo(id=2, code="LH2", capacity=100)]

    candidates = build_candidates(class_candidate_slots(time_slots), venues)

    assert [(c.slot.start_time, c.venue.code) for c in candidates] == [
        ("08:00", "LH1"),
        ("08:00", "LH2"),
        ("18:00", "ONLINE"),
    ]
    assert candidates[-1].venue is ONLINE_VENUE
