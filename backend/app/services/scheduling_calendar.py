from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from app.core.exceptions import SchedulerError
from app.models.time_slot import LearningMode, TimeSlot
from app.schemas.calendar import DAY_ORDER, day_index, normalize_day, parse_time_to_minutes
from app.services.scheduling_types import ONLINE_VENUE, Candidate, CandidateSlot, TeachingMode, VenueInfo

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class ExamSlotTemplate:
    slot_number: int
    start: int
    end: int


def available_dates(start_date: date, end_date: date, excluded_days: Iterable[str] = ()) -> list[date]:
    """Working dates in [start_date, end_date]; weekends and excluded weekdays dropped."""
    if end_date < start_date:
        raise SchedulerError("Exam window ends before it starts", details={"start_date": str(start_date), "end_date": str(end_date)})
    excluded = {normalize_day(day) for day in excluded_days}
    dates = []
    current = start_date
    while current <= end_date:
        if current.weekday() < 5 and DAY_ORDER[current.weekday()] not in excluded:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def generate_exam_slots(
    start_time: str,
    duration_minutes: int,
    break_minutes: int,
    slots_per_day: int,
) -> list[ExamSlotTemplate]:
    """Back-to-back exam sittings separated by a break; stops at midnight."""
    if duration_minutes <= 0:
        raise SchedulerError("Exam duration must be positive")
    slots = []
    current = parse_time_to_minutes(start_time)
    for number in range(1, slots_per_day + 1):
        end = current + duration_minutes
        if end > MINUTES_PER_DAY:
            break
        slots.append(ExamSlotTemplate(slot_number=number, start=current, end=end))
        current = end + break_minutes
    return slots


def exam_candidate_slots(dates: Iterable[date], templates: Iterable[ExamSlotTemplate]) -> list[CandidateSlot]:
    templates = list(templates)
    slots = []
    for exam_date in dates:
        for template in templates:
            slots.append(
                CandidateSlot(
                    day=DAY_ORDER[exam_date.weekday()],
                    day_index=exam_date.weekday(),
                    start=template.start,
                    end=template.end,
                    date=exam_date,
                    slot_number=template.slot_number,
                )
            )
    return slots


def class_candidate_slots(time_slots: Iterable[TimeSlot]) -> list[CandidateSlot]:
    """Weekly teaching slots tagged with the mode they are taught in."""
    slots = []
    for time_slot in time_slots:
        mode = TeachingMode.online if time_slot.status == LearningMode.online else TeachingMode.physical
        start = parse_time_to_minutes(time_slot.start_time)
        end = parse_time_to_minutes(time_slot.end_time)
        if end <= start:
            continue
        slots.append(
            CandidateSlot(
                day=normalize_day(time_slot.day),
                day_index=day_index(time_slot.day),
                start=start,
                end=end,
                time_slot_id=time_slot.id,
                teaching_mode=mode,
            )
        )
    return slots


def build_candidates(slots: Iterable[CandidateSlot], venues: Iterable[VenueInfo]) -> list[Candidate]:
    """Pair physical slots with every venue and online slots with the online venue."""
    venues = list(venues)
    candidates = []
    for slot in slots:
        if slot.teaching_mode == TeachingMode.online:
            candidates.append(Candidate(slot=slot, venue=ONLINE_VENUE))
        else:
            candidates.extend(Candidate(slot=slot, venue=venue) for venue in venues)
    candidates.sort(key=Candidate.sort_key)
    return candidates
