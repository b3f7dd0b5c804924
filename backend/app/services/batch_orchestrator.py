from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    InvalidTransitionError,
    ResourceNotFoundError,
    SchedulerError,
    WorklistError,
)
from app.models.scheduled_session import ScheduledSession
from app.models.scheduling_batch import BatchStatus, SchedulingBatch, TimetableKind
from app.models.scheduling_failure import FailureStatus, SchedulingFailure
from app.schemas.scheduling import BatchOptions
from app.services import batch_control
from app.services.audit import log_activity
from app.services.failure_recorder import mark_retried, record_failure
from app.services.notifications import publish_timetable_changed
from app.services.resource_catalog import ResourceCatalog
from app.services.scheduling_calendar import (
    available_dates,
    build_candidates,
    class_candidate_slots,
    exam_candidate_slots,
    generate_exam_slots,
)
from app.services.scheduling_types import (
    BookedSet,
    Candidate,
    CheckPolicy,
    ConflictKind,
    ItemIdentity,
    Placement,
    SchedulableItem,
)
from app.services.slot_allocator import AllocationOutcome, plan_batch
from app.services.workload import WorkloadLimit, WorkloadState

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    batch: SchedulingBatch
    placements: list[ScheduledSession] = field(default_factory=list)
    failures: list[SchedulingFailure] = field(default_factory=list)
    outcomes: list[AllocationOutcome] = field(default_factory=list)

    @property
    def batch_id(self) -> str:
        return self.batch.id

    @property
    def cancelled(self) -> bool:
        return self.batch.status == BatchStatus.cancelled


def required_duration(options: BatchOptions) -> int:
    settings = get_settings()
    if options.kind == TimetableKind.exam_timetable:
        hours = options.exam_duration_hours or settings.exam_duration_hours
        return int(round(hours * 60))
    return options.session_minutes or 0


def validate_worklist(semester_id: int, worklist: Sequence[SchedulableItem]) -> None:
    seen: set[ItemIdentity] = set()
    for item in worklist:
        details = {"unit_code": item.unit_code, "class_ids": list(item.class_ids)}
        if item.semester_id != semester_id:
            raise WorklistError(
                f"Item {item.unit_code} belongs to semester {item.semester_id}, not {semester_id}",
                details=details,
            )
        if not item.class_ids:
            raise WorklistError(f"Item {item.unit_code} has no classes", details=details)
        if len(set(item.class_ids)) != len(item.class_ids):
            raise WorklistError(f"Item {item.unit_code} lists a class more than once", details=details)
        if item.student_count <= 0:
            raise WorklistError(f"Item {item.unit_code} has no students", details=details)
        if item.required_duration < 0:
            raise WorklistError(f"Item {item.unit_code} has a negative duration", details=details)
        if item.identity in seen:
            raise WorklistError(f"Item {item.unit_code} appears twice in the worklist", details=details)
        seen.add(item.identity)


def build_batch_candidates(catalog: ResourceCatalog, options: BatchOptions) -> list[Candidate]:
    settings = get_settings()
    venues = catalog.venues(options.kind, options.venue_ids)
    if options.kind == TimetableKind.exam_timetable:
        dates = available_dates(options.start_date, options.end_date, options.excluded_days)
        templates = generate_exam_slots(
            options.start_time or settings.exam_start_time,
            required_duration(options),
            options.break_minutes if options.break_minutes is not None else settings.exam_break_minutes,
            options.slots_per_day or settings.exam_slots_per_day,
        )
        slots = exam_candidate_slots(dates, templates)
    else:
        slots = class_candidate_slots(catalog.time_slots())
    candidates = build_candidates(slots, venues)
    logger.debug(
        "Semester %s %s: %d slot(s) x %d venue(s) = %d candidate(s)",
        catalog.semester_id,
        options.kind.value,
        len(slots),
        len(venues),
        len(candidates),
    )
    return candidates


def build_policy(options: BatchOptions, class_students: dict[int, frozenset[str]]) -> CheckPolicy:
    if options.kind == TimetableKind.exam_timetable:
        return CheckPolicy(
            class_students=class_students,
            shared_invigilation=True,
            max_sessions_per_class_per_day=options.max_exams_per_day,
        )
    settings = get_settings()
    max_hours = options.max_hours_per_day or settings.class_max_hours_per_day
    return CheckPolicy(
        class_students=class_students,
        max_physical_per_class_per_day=options.max_physical_per_day or settings.class_max_physical_per_day,
        max_minutes_per_class_per_day=max_hours * 60,
        min_rest_minutes=(
            options.min_rest_minutes if options.min_rest_minutes is not None else settings.class_min_rest_minutes
        ),
    )


def _default_workload_limit() -> WorkloadLimit | None:
    settings = get_settings()
    if not settings.enforce_default_workload_limits:
        return None
    return WorkloadLimit(max_units=settings.default_max_units, max_credit_hours=settings.default_max_credit_hours)


def _session_from_placement(batch: SchedulingBatch, placement: Placement) -> ScheduledSession:
    item = placement.item
    return ScheduledSession(
        id=placement.id,
        batch_id=batch.id,
        semester_id=batch.semester_id,
        kind=batch.kind,
        unit_id=item.unit_id,
        unit_code=item.unit_code,
        class_ids=list(item.class_ids),
        program_id=item.program_id,
        school_id=item.school_id,
        day=placement.slot.day,
        session_date=placement.slot.date,
        start_time=placement.slot.start_time,
        end_time=placement.slot.end_time,
        slot_number=placement.slot.slot_number,
        time_slot_id=placement.slot.time_slot_id,
        session_number=item.session_number,
        teaching_mode=placement.slot.teaching_mode.value,
        venue_id=None if placement.venue.is_virtual else placement.venue.id,
        venue_code=placement.venue.code,
        lecturer_code=item.lecturer_code,
        student_count=item.student_count,
        credit_hours=item.credit_hours,
        is_locked=False,
    )


def _record_aborted(db: Session, batch: SchedulingBatch, error: str) -> None:
    aborted = SchedulingBatch(
        id=batch.id,
        semester_id=batch.semester_id,
        kind=batch.kind,
        status=BatchStatus.aborted,
        retried_from_batch_id=batch.retried_from_batch_id,
        item_count=batch.item_count,
        triggered_by=batch.triggered_by,
        options=batch.options,
        error=error[:2000],
        completed_at=datetime.now(timezone.utc),
    )
    try:
        db.merge(aborted)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unable to record aborted batch %s", batch.id)


def run_batch(
    db: Session,
    *,
    semester_id: int,
    worklist: Sequence[SchedulableItem],
    options: BatchOptions,
    triggered_by: str | None = None,
    retried_from_batch_id: str | None = None,
    retry_sources: dict[ItemIdentity, list[SchedulingFailure]] | None = None,
    batch_id: str | None = None,
) -> BatchResult:
    """Place every item of ``worklist`` and persist the outcome as one batch.

    Placements, failures and the batch row are committed together. An
    infrastructure error rolls the run back and leaves an ``aborted`` batch
    row behind; conflicts never raise.
    """
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    validate_worklist(semester_id, worklist)
    retry_sources = retry_sources or {}
    if batch_id is not None and db.get(SchedulingBatch, batch_id) is not None:
        raise InvalidTransitionError("Batch id is already in use", details={"batch_id": batch_id})

    with batch_control.semester_lock(db, semester_id):
        batch = SchedulingBatch(
            id=batch_id or str(uuid.uuid4()),
            semester_id=semester_id,
            kind=options.kind,
            status=BatchStatus.running,
            retried_from_batch_id=retried_from_batch_id,
            item_count=len(worklist),
            triggered_by=triggered_by,
            options=options.model_dump(mode="json"),
        )
        batch_control.register_batch(batch.id, semester_id)
        logger.info(
            "Batch %s started: semester %s, %s, %d item(s)",
            batch.id,
            semester_id,
            options.kind.value,
            len(worklist),
        )
        try:
            db.add(batch)
            if options.replace_existing:
                removed = catalog.delete_unlocked_sessions(options.kind)
                logger.info("Batch %s replaced %d unlocked placement(s)", batch.id, removed)
            prior = catalog.booked_placements(options.kind, locked_only=options.replace_existing)
            booked = BookedSet(prior)
            workload = WorkloadState.from_placements(
                catalog.workload_limits(),
                prior,
                default_limit=_default_workload_limit(),
            )
            policy = build_policy(options, catalog.class_students())
            candidates = build_batch_candidates(catalog, options)
            outcomes = plan_batch(
                worklist,
                candidates,
                booked,
                workload,
                policy,
                is_cancelled=lambda: batch_control.is_cancelled(batch.id),
            )
            result = _persist_outcomes(db, batch, outcomes, retry_sources, triggered_by)
            log_activity(
                db,
                actor=triggered_by,
                action="batch.retry" if retried_from_batch_id else "batch.run",
                semester_id=semester_id,
                entity_type="scheduling_batch",
                entity_id=batch.id,
                details={
                    "kind": options.kind.value,
                    "status": batch.status.value,
                    "item_count": batch.item_count,
                    "placed_count": batch.placed_count,
                    "failed_count": batch.failed_count,
                    "retried_from_batch_id": retried_from_batch_id,
                },
            )
            db.commit()
        except AppError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Batch %s aborted", batch.id)
            _record_aborted(db, batch, str(exc))
            raise SchedulerError(
                "Scheduling batch aborted by a storage error",
                details={"batch_id": batch.id},
            ) from exc
        finally:
            batch_control.release_batch(batch.id)

    db.refresh(batch)
    logger.info(
        "Batch %s %s: %d placed, %d failed",
        batch.id,
        batch.status.value,
        batch.placed_count,
        batch.failed_count,
    )
    publish_timetable_changed(batch)
    return result


def _persist_outcomes(
    db: Session,
    batch: SchedulingBatch,
    outcomes: list[AllocationOutcome],
    retry_sources: dict[ItemIdentity, list[SchedulingFailure]],
    triggered_by: str | None,
) -> BatchResult:
    result = BatchResult(batch=batch, outcomes=outcomes)
    cancelled = False
    for outcome in outcomes:
        sources = retry_sources.get(outcome.item.identity, [])
        if outcome.ok:
            if outcome.skipped:
                existing = db.get(ScheduledSession, outcome.placement.id)
                if existing is not None:
                    result.placements.append(existing)
            else:
                session = _session_from_placement(batch, outcome.placement)
                db.add(session)
                result.placements.append(session)
            for source in sources:
                mark_retried(db, source, batch_id=batch.id, retried_by=triggered_by)
            continue
        if outcome.failure_kind == ConflictKind.batch_cancelled:
            cancelled = True
        failure = record_failure(db, batch, outcome, retry_of_id=sources[0].id if sources else None)
        result.failures.append(failure)

    batch.placed_count = sum(1 for outcome in outcomes if outcome.ok)
    batch.failed_count = len(outcomes) - batch.placed_count
    batch.status = BatchStatus.cancelled if cancelled else BatchStatus.completed
    batch.completed_at = datetime.now(timezone.utc)
    return result


def run_semester(
    db: Session,
    *,
    semester_id: int,
    options: BatchOptions,
    triggered_by: str | None = None,
    batch_id: str | None = None,
) -> BatchResult:
    """Derive the worklist from the catalog, then run it as one batch."""
    catalog = ResourceCatalog(db, semester_id)
    catalog.semester()
    worklist = catalog.worklist(
        options.kind,
        required_duration=required_duration(options),
        program_id=options.program_id,
        school_id=options.school_id,
        unit_ids=options.unit_ids,
    )
    return run_batch(
        db,
        semester_id=semester_id,
        worklist=worklist,
        options=options,
        triggered_by=triggered_by,
        batch_id=batch_id,
    )


def retry_failures(
    db: Session,
    failure_ids: Sequence[str],
    *,
    overrides: dict | None = None,
    triggered_by: str | None = None,
) -> BatchResult:
    """Re-run pending failures as a new batch against the current catalog.

    Options come from the source batch, updated with ``overrides``. Sources
    that get placed move to ``retried``; the rest stay ``pending`` and the new
    failure points back through ``retry_of_id``.
    """
    requested = list(dict.fromkeys(failure_ids))
    if not requested:
        raise WorklistError("No failures selected for retry")
    failures = {
        failure.id: failure
        for failure in db.execute(select(SchedulingFailure).where(SchedulingFailure.id.in_(requested))).scalars()
    }
    missing = [failure_id for failure_id in requested if failure_id not in failures]
    if missing:
        raise ResourceNotFoundError("Scheduling failure", ", ".join(missing))
    ordered = [failures[failure_id] for failure_id in requested]

    not_pending = [failure.id for failure in ordered if failure.status != FailureStatus.pending]
    if not_pending:
        raise InvalidTransitionError(
            "Only pending failures can be retried",
            details={"failure_ids": not_pending},
        )
    scopes = {(failure.semester_id, failure.kind) for failure in ordered}
    if len(scopes) != 1:
        raise WorklistError("Failures selected for retry must share one semester and timetable kind")
    semester_id, kind = scopes.pop()

    source_batch = db.get(SchedulingBatch, ordered[0].batch_id)
    base = dict(source_batch.options) if source_batch is not None and source_batch.options else {}
    base.update({key: value for key, value in (overrides or {}).items() if value is not None})
    base["kind"] = kind
    base["replace_existing"] = False
    try:
        options = BatchOptions.model_validate(base)
    except ValueError as exc:
        raise WorklistError("Retry options are incomplete", details={"error": str(exc)}) from exc

    catalog = ResourceCatalog(db, semester_id)
    duration = required_duration(options)
    retry_sources: dict[ItemIdentity, list[SchedulingFailure]] = defaultdict(list)
    worklist: list[SchedulableItem] = []
    for failure in ordered:
        item = catalog.item_for(
            kind,
            failure.unit_id,
            failure.class_ids or [],
            required_duration=duration,
            session_number=failure.session_number or 1,
        )
        if item.identity not in retry_sources:
            worklist.append(item)
        retry_sources[item.identity].append(failure)

    return run_batch(
        db,
        semester_id=semester_id,
        worklist=worklist,
        options=options,
        triggered_by=triggered_by,
        retried_from_batch_id=ordered[0].batch_id,
        retry_sources=dict(retry_sources),
    )


def cancel_batch(db: Session, batch_id: str, *, requested_by: str | None = None) -> bool:
    """Flag an in-flight batch for cancellation.

    A running batch is not committed yet, so the registry is asked first.
    """
    if batch_control.request_cancel(batch_id):
        logger.info("Cancel of batch %s requested by %s", batch_id, requested_by or "unknown")
        return True
    batch = db.get(SchedulingBatch, batch_id)
    if batch is None:
        raise ResourceNotFoundError("Scheduling batch", batch_id)
    raise InvalidTransitionError(
        f"Batch is already {batch.status.value}",
        details={"batch_id": batch_id, "status": batch.status.value},
    )
