from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.scheduling_batch import BatchStatus, TimetableKind
from app.models.scheduling_failure import FailureStatus
from app.models.time_slot import LearningMode
from app.models.venue import VenueType
from app.schemas.calendar import DAY_VALUES, TIME_PATTERN, normalize_day


class BatchOptions(BaseModel):
    kind: TimetableKind = TimetableKind.exam_timetable
    replace_existing: bool = False
    venue_ids: list[int] | None = None

    # Exam calendar; omitted values fall back to settings.
    start_date: date | None = None
    end_date: date | None = None
    excluded_days: list[str] = Field(default_factory=list)
    start_time: str | None = Field(default=None, min_length=4, max_length=5)
    exam_duration_hours: float | None = Field(default=None, gt=0, le=8)
    break_minutes: int | None = Field(default=None, ge=0, le=240)
    slots_per_day: int | None = Field(default=None, ge=1, le=8)
    max_exams_per_day: int | None = Field(default=None, ge=1, le=8)

    # Class timetable. Without session_minutes each unit is split by credit
    # hours; with it, each unit gets one physical session of that length.
    session_minutes: int | None = Field(default=None, ge=1, le=600)
    max_physical_per_day: int | None = Field(default=None, ge=1, le=8)
    max_hours_per_day: int | None = Field(default=None, ge=1, le=12)
    min_rest_minutes: int | None = Field(default=None, ge=0, le=120)

    program_id: int | None = None
    school_id: int | None = None
    unit_ids: list[int] | None = None

    @field_validator("start_time")
    @classmethod
    def validate_time_format(cls, value: str | None) -> str | None:
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @field_validator("excluded_days")
    @classmethod
    def validate_excluded_days(cls, value: list[str]) -> list[str]:
        normalized = []
        for day in value:
            cleaned = normalize_day(day)
            if cleaned not in DAY_VALUES:
                raise ValueError(f"Unknown day: {day}")
            if cleaned not in normalized:
                normalized.append(cleaned)
        return normalized

    @model_validator(mode="after")
    def validate_exam_window(self) -> "BatchOptions":
        if self.kind != TimetableKind.exam_timetable:
            return self
        if self.start_date is None or self.end_date is None:
            raise ValueError("Exam timetables require start_date and end_date")
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class BatchRunRequest(BatchOptions):
    # Client-chosen id, so the batch can be cancelled while the request is in flight.
    batch_id: str | None = Field(default=None, min_length=1, max_length=36)

    def options(self) -> BatchOptions:
        return BatchOptions.model_validate(self.model_dump(exclude={"batch_id"}))


class RetryRequest(BaseModel):
    failure_ids: list[str] = Field(min_length=1, max_length=500)
    start_date: date | None = None
    end_date: date | None = None
    excluded_days: list[str] = Field(default_factory=list)
    venue_ids: list[int] | None = None


class PlacementOut(BaseModel):
    id: str
    batch_id: str
    semester_id: int
    kind: TimetableKind
    unit_id: int
    unit_code: str
    class_ids: list[int]
    program_id: int | None
    school_id: int | None
    day: str
    session_date: date | None
    start_time: str
    end_time: str
    slot_number: int | None
    time_slot_id: int | None
    session_number: int
    teaching_mode: str
    venue_id: int | None
    venue_code: str
    lecturer_code: str | None
    student_count: int
    is_locked: bool

    model_config = {"from_attributes": True}


class ConflictCauseOut(BaseModel):
    kind: str
    message: str
    resource_type: str | None = None
    resource_id: str | None = None
    conflicting_placement_id: str | None = None
    conflicting_unit_code: str | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None


class FailureOut(BaseModel):
    id: str
    batch_id: str
    semester_id: int
    kind: TimetableKind
    program_id: int | None
    school_id: int | None
    unit_id: int
    unit_code: str
    unit_name: str
    class_ids: list[int]
    class_names: str
    session_number: int
    student_count: int
    lecturer_code: str | None
    attempted_date: date | None
    attempted_day: str | None
    attempted_start_time: str | None
    attempted_end_time: str | None
    assigned_slot_number: int | None
    attempted_venue_code: str | None
    failure_kind: str
    failure_reason: str
    conflict_details: list[ConflictCauseOut]
    status: FailureStatus
    retry_of_id: str | None
    resolved_at: datetime | None
    resolved_by: str | None
    resolution_notes: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class BatchOut(BaseModel):
    id: str
    semester_id: int
    kind: TimetableKind
    status: BatchStatus
    retried_from_batch_id: str | None
    item_count: int
    placed_count: int
    failed_count: int
    triggered_by: str | None
    error: str | None
    created_at: datetime | None
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class BatchRunOut(BaseModel):
    batch: BatchOut
    placements: list[PlacementOut]
    failures: list[FailureOut]


class BatchSummaryOut(BaseModel):
    batch_id: str
    semester_id: int
    kind: TimetableKind
    status: BatchStatus
    item_count: int
    placed_count: int
    failed_count: int
    total_failures: int
    by_status: dict[str, int]
    by_failure_kind: dict[str, int]


class CancelOut(BaseModel):
    batch_id: str
    cancel_requested: bool


class ActiveBatchesOut(BaseModel):
    semester_id: int
    batch_ids: list[str]


class FailureResolveRequest(BaseModel):
    status: FailureStatus = FailureStatus.resolved
    notes: str | None = Field(default=None, max_length=5000)


class FailureReopenRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class FailureStatisticsOut(BaseModel):
    total: int
    pending: int
    resolved: int
    retried: int
    ignored: int


class SemesterOut(BaseModel):
    id: int
    name: str
    intake_type: str | None
    academic_year: str | None
    is_active: bool
    school_code: str | None

    model_config = {"from_attributes": True}


class VenueOut(BaseModel):
    id: int
    code: str
    name: str
    building: str | None
    capacity: int
    type: VenueType
    is_active: bool

    model_config = {"from_attributes": True}


class TimeSlotOut(BaseModel):
    id: int
    day: str
    start_time: str
    end_time: str
    status: LearningMode

    model_config = {"from_attributes": True}


class WorkloadLimitOut(BaseModel):
    lecturer_code: str
    max_units: int
    max_credit_hours: int
    assigned_units: int
    assigned_credit_hours: int


class WorklistItemOut(BaseModel):
    unit_id: int
    unit_code: str
    unit_name: str
    class_ids: list[int]
    class_names: list[str]
    is_shared: bool
    student_count: int
    lecturer_code: str | None
    credit_hours: int
    program_id: int | None
    school_id: int | None
    session_number: int
    teaching_mode: str
    required_duration: int
