"""Value types shared by the conflict checker, allocator and orchestrator.

Everything here is a plain dataclass with no database access so the
placement search can run (and be tested) without a session.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Union

from app.schemas.calendar import minutes_to_time


class ConflictKind(str, Enum):
    capacity_exceeded = "CapacityExceeded"
    venue_conflict = "VenueConflict"
    lecturer_conflict = "LecturerConflict"
    student_overlap = "StudentOverlapConflict"
    workload_limit_exceeded = "WorkloadLimitExceeded"
    daily_load_exceeded = "DailyLoadExceeded"
    insufficient_rest = "InsufficientRest"
    no_venue_capacity = "NoVenueCapacity"
    no_available_slot = "NoAvailableSlot"
    batch_cancelled = "BatchCancelled"


class TeachingMode(str, Enum):
    physical = "physical"
    online = "online"


# Evaluation order of the per-candidate checks. A later position means the
# candidate got further before failing.
CHECK_ORDER: tuple[ConflictKind, ...] = (
    ConflictKind.capacity_exceeded,
    ConflictKind.venue_conflict,
    ConflictKind.lecturer_conflict,
    ConflictKind.student_overlap,
    ConflictKind.insufficient_rest,
    ConflictKind.workload_limit_exceeded,
    ConflictKind.daily_load_exceeded,
)


@dataclass(frozen=True)
class PerClass:
    class_id: int

    @property
    def class_ids(self) -> tuple[int, ...]:
        return (self.class_id,)


@dataclass(frozen=True)
class Shared:
    """A common unit sat by several classes in one session."""

    class_ids: tuple[int, ...]


ClassGroup = Union[PerClass, Shared]
ItemIdentity = tuple[int, tuple[int, ...], int]


@dataclass(frozen=True)
class SchedulableItem:
    unit_id: int
    unit_code: str
    unit_name: str
    semester_id: int
    class_group: ClassGroup
    student_count: int
    required_duration: int = 0
    lecturer_code: str | None = None
    credit_hours: int = 0
    program_id: int | None = None
    school_id: int | None = None
    class_names: tuple[str, ...] = ()
    # Class timetables split a unit into numbered weekly sessions.
    session_number: int = 1
    teaching_mode: TeachingMode = TeachingMode.physical

    @property
    def class_ids(self) -> tuple[int, ...]:
        return self.class_group.class_ids

    @property
    def is_shared(self) -> bool:
        return isinstance(self.class_group, Shared)

    @property
    def identity(self) -> ItemIdentity:
        return (self.unit_id, tuple(sorted(self.class_ids)), self.session_number)

    def sort_key(self) -> tuple:
        # Largest classes first so they claim large venues before fragmentation.
        return (-self.student_count, self.unit_code, self.unit_id, self.class_ids, self.session_number)


@dataclass(frozen=True)
class VenueInfo:
    id: int
    code: str
    capacity: int
    name: str = ""
    building: str | None = None
    # Online sessions need no room; capacity and venue clashes do not apply.
    is_virtual: bool = False


ONLINE_VENUE = VenueInfo(id=0, code="ONLINE", capacity=0, name="Online", is_virtual=True)


@dataclass(frozen=True)
class CandidateSlot:
    day: str
    day_index: int
    start: int
    end: int
    date: date | None = None
    slot_number: int | None = None
    time_slot_id: int | None = None
    teaching_mode: TeachingMode = TeachingMode.physical

    @property
    def calendar_key(self) -> str:
        return self.date.isoformat() if self.date is not None else self.day

    @property
    def order_key(self) -> int:
        return self.date.toordinal() if self.date is not None else self.day_index

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end)


@dataclass(frozen=True)
class Candidate:
    slot: CandidateSlot
    venue: VenueInfo

    def sort_key(self) -> tuple:
        # Smallest sufficient venue first within a (date, start) position.
        return (
            self.slot.order_key,
            self.slot.start,
            self.venue.capacity,
            self.venue.code,
            self.venue.id,
            self.slot.slot_number or 0,
        )


@dataclass(frozen=True)
class Placement:
    item: SchedulableItem
    slot: CandidateSlot
    venue: VenueInfo
    id: str = ""
    carried_over: bool = False

    @property
    def lecturer_code(self) -> str | None:
        return self.item.lecturer_code

    @property
    def calendar_key(self) -> str:
        return self.slot.calendar_key

    @property
    def student_count(self) -> int:
        return self.item.student_count

    def overlaps(self, other: "Placement") -> bool:
        return self.calendar_key == other.calendar_key and times_overlap(
            self.slot.start, self.slot.end, other.slot.start, other.slot.end
        )

    def signature(self) -> tuple:
        """Identity of the placement independent of generated ids."""
        return (
            self.item.identity,
            self.calendar_key,
            self.slot.start,
            self.slot.end,
            self.venue.id,
            self.lecturer_code,
        )


@dataclass(frozen=True)
class ConflictCause:
    kind: ConflictKind
    message: str
    resource_type: str | None = None
    resource_id: str | None = None
    conflicting_placement_id: str | None = None
    conflicting_unit_code: str | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "conflicting_placement_id": self.conflicting_placement_id,
            "conflicting_unit_code": self.conflicting_unit_code,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(frozen=True)
class ConflictResult:
    causes: tuple[ConflictCause, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.causes

    @property
    def first(self) -> ConflictCause | None:
        return self.causes[0] if self.causes else None

    @property
    def kinds(self) -> tuple[ConflictKind, ...]:
        return tuple(dict.fromkeys(cause.kind for cause in self.causes))


OK = ConflictResult()


def times_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """[start, end) intersection; touching ranges do not overlap."""
    return start_a < end_b and start_b < end_a


class BookedSet:
    """Placements committed so far, indexed by calendar key."""

    def __init__(self, placements: Iterable[Placement] = ()) -> None:
        self._by_day: dict[str, list[Placement]] = defaultdict(list)
        self._by_identity: dict[ItemIdentity, Placement] = {}
        self._ordered: list[Placement] = []
        for placement in placements:
            self.add(placement)

    def add(self, placement: Placement) -> None:
        self._by_day[placement.calendar_key].append(placement)
        self._by_identity.setdefault(placement.item.identity, placement)
        self._ordered.append(placement)

    def on(self, calendar_key: str) -> list[Placement]:
        return self._by_day.get(calendar_key, [])

    def find_item(self, item: SchedulableItem) -> Placement | None:
        return self._by_identity.get(item.identity)

    def class_sessions_on(self, class_id: int, calendar_key: str) -> list[Placement]:
        return [placement for placement in self.on(calendar_key) if class_id in placement.item.class_ids]

    def sessions_for_class_on(self, class_id: int, calendar_key: str) -> int:
        return len(self.class_sessions_on(class_id, calendar_key))

    def __iter__(self) -> Iterator[Placement]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)


@dataclass
class CheckPolicy:
    """Knobs for the conflict checker that vary per timetable kind."""

    class_students: dict[int, frozenset[str]] = field(default_factory=dict)
    # Exams: one invigilator may cover several sections of the same unit.
    shared_invigilation: bool = False
    max_sessions_per_class_per_day: int | None = None
    # Class timetables: physical sessions and taught minutes per class per day,
    # and the gap a lecturer or class needs between back-to-back sessions.
    max_physical_per_class_per_day: int | None = None
    max_minutes_per_class_per_day: int | None = None
    min_rest_minutes: int | None = None

    def students_of(self, class_ids: Iterable[int]) -> frozenset[str]:
        students: set[str] = set()
        for class_id in class_ids:
            students.update(self.class_students.get(class_id, frozenset()))
        return frozenset(students)
