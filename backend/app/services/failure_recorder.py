from __future__ import annotations

from datetime import datetime, timezone
import logging
import re

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidTransitionError, ResourceNotFoundError, SchedulerError
from app.models.scheduling_batch import SchedulingBatch, TimetableKind
from app.models.scheduling_failure import FailureStatus, SchedulingFailure
from app.services.audit import log_activity
from app.services.slot_allocator import AllocationOutcome

logger = logging.getLogger(__name__)

CLASS_NAME_SEPARATOR = "; "
SECTION_PATTERN = re.compile(r"^(?P<name>.*) \(Section: (?P<section>[^)]*)\)$")

RESOLUTION_TARGETS = {FailureStatus.resolved, FailureStatus.ignored}
REOPENABLE = {FailureStatus.retried, FailureStatus.resolved, FailureStatus.ignored}


def record_failure(
    db: Session,
    batch: SchedulingBatch,
    outcome: AllocationOutcome,
    *,
    retry_of_id: str | None = None,
) -> SchedulingFailure:
    """Persist one unplaceable item for ``batch``. Caller owns the transaction."""
    if outcome.ok:
        raise SchedulerError("Cannot record a failure for a placed item", details={"unit_code": outcome.item.unit_code})
    item = outcome.item
    attempt = outcome.best_attempt
    repeated = has_similar_pending_failure(
        db,
        unit_code=item.unit_code,
        program_id=item.program_id,
        semester_id=batch.semester_id,
    )
    failure = SchedulingFailure(
        batch_id=batch.id,
        semester_id=batch.semester_id,
        kind=batch.kind,
        program_id=item.program_id,
        school_id=item.school_id,
        unit_id=item.unit_id,
        unit_code=item.unit_code,
        unit_name=item.unit_name,
        class_ids=list(item.class_ids),
        class_names=CLASS_NAME_SEPARATOR.join(item.class_names),
        session_number=item.session_number,
        student_count=item.student_count,
        lecturer_code=item.lecturer_code,
        attempted_date=attempt.slot.date if attempt else None,
        attempted_day=attempt.slot.day if attempt else None,
        attempted_start_time=attempt.slot.start_time if attempt else None,
        attempted_end_time=attempt.slot.end_time if attempt else None,
        assigned_slot_number=attempt.slot.slot_number if attempt else None,
        attempted_venue_code=attempt.venue.code if attempt else None,
        failure_kind=outcome.failure_kind.value,
        failure_reason=outcome.failure_reason,
        conflict_details=[cause.to_dict() for cause in outcome.conflicts],
        status=FailureStatus.pending,
        retry_of_id=retry_of_id,
    )
    db.add(failure)
    logger.info(
        "Batch %s: %s %s unplaceable (%s)",
        batch.id,
        item.unit_code,
        list(item.class_ids),
        failure.failure_kind,
    )
    if repeated:
        logger.info(
            "Batch %s: %s for program %s repeats a pending failure from an earlier batch",
            batch.id,
            item.unit_code,
            item.program_id,
        )
    return failure


def get_failure(db: Session, failure_id: str) -> SchedulingFailure:
    failure = db.get(SchedulingFailure, failure_id)
    if failure is None:
        raise ResourceNotFoundError("Scheduling failure", failure_id)
    return failure


def resolve_failure(
    db: Session,
    failure_id: str,
    *,
    status: FailureStatus,
    notes: str | None,
    resolved_by: str | None,
) -> SchedulingFailure:
    """Close a pending failure as resolved or ignored."""
    failure = get_failure(db, failure_id)
    if status not in RESOLUTION_TARGETS:
        raise InvalidTransitionError(
            f"Failures can only be resolved as {', '.join(sorted(s.value for s in RESOLUTION_TARGETS))}",
            details={"failure_id": failure_id, "requested_status": status.value},
        )
    cleaned_notes = (notes or "").strip()
    cleaned_by = (resolved_by or "").strip()
    if not cleaned_notes:
        raise SchedulerError("Resolution notes are required", details={"failure_id": failure_id})
    if not cleaned_by:
        raise SchedulerError("Resolving operator is required", details={"failure_id": failure_id})
    if failure.status != FailureStatus.pending:
        raise InvalidTransitionError(
            f"Only pending failures can be {status.value}; this failure is {failure.status.value}",
            details={"failure_id": failure_id, "current_status": failure.status.value},
        )

    failure.status = status
    failure.resolution_notes = cleaned_notes
    failure.resolved_by = cleaned_by
    failure.resolved_at = datetime.now(timezone.utc)
    log_activity(
        db,
        actor=cleaned_by,
        action=f"failure.{status.value}",
        semester_id=failure.semester_id,
        entity_type="scheduling_failure",
        entity_id=failure.id,
        details={"batch_id": failure.batch_id, "unit_code": failure.unit_code},
    )
    return failure


def reopen_failure(
    db: Session,
    failure_id: str,
    *,
    notes: str | None,
    reopened_by: str | None,
) -> SchedulingFailure:
    failure = get_failure(db, failure_id)
    if failure.status not in REOPENABLE:
        raise InvalidTransitionError(
            "Failure is already pending",
            details={"failure_id": failure_id, "current_status": failure.status.value},
        )
    previous = failure.status
    failure.status = FailureStatus.pending
    failure.resolved_at = None
    failure.resolved_by = None
    failure.resolution_notes = (notes or "").strip() or None
    log_activity(
        db,
        actor=(reopened_by or "").strip() or None,
        action="failure.reopen",
        semester_id=failure.semester_id,
        entity_type="scheduling_failure",
        entity_id=failure.id,
        details={"previous_status": previous.value},
    )
    return failure


def mark_retried(db: Session, failure: SchedulingFailure, *, batch_id: str, retried_by: str | None) -> None:
    if failure.status != FailureStatus.pending:
        raise InvalidTransitionError(
            "Only pending failures can be marked retried",
            details={"failure_id": failure.id, "current_status": failure.status.value},
        )
    failure.status = FailureStatus.retried
    failure.resolved_at = datetime.now(timezone.utc)
    failure.resolved_by = retried_by
    failure.resolution_notes = f"Placed by retry batch {batch_id}"


def batch_summary(db: Session, batch_id: str) -> dict:
    batch = db.get(SchedulingBatch, batch_id)
    if batch is None:
        raise ResourceNotFoundError("Scheduling batch", batch_id)

    by_status = {status.value: 0 for status in FailureStatus}
    for status, count in db.execute(
        select(SchedulingFailure.status, func.count())
        .where(SchedulingFailure.batch_id == batch_id)
        .group_by(SchedulingFailure.status)
    ):
        by_status[status.value] = count

    by_kind: dict[str, int] = {}
    for kind, count in db.execute(
        select(SchedulingFailure.failure_kind, func.count())
        .where(SchedulingFailure.batch_id == batch_id)
        .group_by(SchedulingFailure.failure_kind)
        .order_by(SchedulingFailure.failure_kind)
    ):
        by_kind[kind] = count

    return {
        "batch_id": batch.id,
        "semester_id": batch.semester_id,
        "kind": batch.kind,
        "status": batch.status,
        "item_count": batch.item_count,
        "placed_count": batch.placed_count,
        "failed_count": batch.failed_count,
        "total_failures": sum(by_status.values()),
        "by_status": by_status,
        "by_failure_kind": by_kind,
    }


def list_failures(
    db: Session,
    *,
    semester_id: int | None = None,
    batch_id: str | None = None,
    kind: TimetableKind | None = None,
    status: FailureStatus | None = None,
    school_id: int | None = None,
    program_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[SchedulingFailure]:
    query = select(SchedulingFailure)
    if semester_id is not None:
        query = query.where(SchedulingFailure.semester_id == semester_id)
    if batch_id is not None:
        query = query.where(SchedulingFailure.batch_id == batch_id)
    if kind is not None:
        query = query.where(SchedulingFailure.kind == kind)
    if status is not None:
        query = query.where(SchedulingFailure.status == status)
    if school_id is not None:
        query = query.where(SchedulingFailure.school_id == school_id)
    if program_id is not None:
        query = query.where(SchedulingFailure.program_id == program_id)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                SchedulingFailure.unit_code.ilike(pattern),
                SchedulingFailure.unit_name.ilike(pattern),
                SchedulingFailure.class_names.ilike(pattern),
            )
        )
    query = query.order_by(SchedulingFailure.created_at.desc(), SchedulingFailure.id).offset(offset).limit(limit)
    return list(db.execute(query).scalars())


def failure_statistics(db: Session, *, semester_id: int | None = None, kind: TimetableKind | None = None) -> dict:
    query = select(SchedulingFailure.status, func.count())
    if semester_id is not None:
        query = query.where(SchedulingFailure.semester_id == semester_id)
    if kind is not None:
        query = query.where(SchedulingFailure.kind == kind)
    counts = {status.value: 0 for status in FailureStatus}
    for status, count in db.execute(query.group_by(SchedulingFailure.status)):
        counts[status.value] = count
    return {"total": sum(counts.values()), **counts}


def has_similar_pending_failure(
    db: Session,
    *,
    unit_code: str,
    program_id: int | None,
    semester_id: int | None = None,
) -> bool:
    query = select(SchedulingFailure.id).where(
        SchedulingFailure.unit_code == unit_code,
        SchedulingFailure.status == FailureStatus.pending,
    )
    if program_id is None:
        query = query.where(SchedulingFailure.program_id.is_(None))
    else:
        query = query.where(SchedulingFailure.program_id == program_id)
    if semester_id is not None:
        query = query.where(SchedulingFailure.semester_id == semester_id)
    return db.execute(query.limit(1)).first() is not None


def as_exam_failure_row(failure: SchedulingFailure) -> dict:
    """Batch-keyed row shaped like the exam scheduling failure log."""
    return {
        "id": failure.id,
        "batch_id": failure.batch_id,
        "semester_id": failure.semester_id,
        "program_id": failure.program_id,
        "school_id": failure.school_id,
        "unit_id": failure.unit_id,
        "unit_code": failure.unit_code,
        "unit_name": failure.unit_name,
        "class_ids": list(failure.class_ids or []),
        "class_names": failure.class_names,
        "student_count": failure.student_count,
        "attempted_date": failure.attempted_date,
        "attempted_start_time": failure.attempted_start_time,
        "attempted_end_time": failure.attempted_end_time,
        "assigned_slot_number": failure.assigned_slot_number,
        "failure_reason": failure.failure_reason,
        "conflict_details": list(failure.conflict_details or []),
        "status": failure.status.value,
        "resolved_at": failure.resolved_at,
        "resolved_by": failure.resolved_by,
        "resolution_notes": failure.resolution_notes,
    }


def _split_class_name(display_name: str) -> tuple[str, str | None]:
    match = SECTION_PATTERN.match(display_name)
    if match is None:
        return display_name, None
    return match.group("name"), match.group("section")


def as_program_failure_row(failure: SchedulingFailure) -> dict:
    """Program/school-scoped row keyed by class name and section.

    That shape has no ``retried`` status; a retried failure was placed by the
    retry batch and projects as resolved.
    """
    names = [name for name in (failure.class_names or "").split(CLASS_NAME_SEPARATOR) if name]
    parsed = [_split_class_name(name) for name in names]
    class_name = ", ".join(name for name, _ in parsed) if parsed else ""
    sections = {section for _, section in parsed if section}
    section = sections.pop() if len(sections) == 1 else None

    attempted_time = None
    if failure.attempted_start_time and failure.attempted_end_time:
        attempted_time = f"{failure.attempted_start_time}-{failure.attempted_end_time}"
    reasons = [
        {
            "type": cause.get("kind"),
            "message": cause.get("message"),
            "date": cause.get("date") or (failure.attempted_date.isoformat() if failure.attempted_date else None),
            "time": attempted_time,
            "venue": failure.attempted_venue_code,
            "lecturer": failure.lecturer_code,
            "details": {
                "resource_type": cause.get("resource_type"),
                "resource_id": cause.get("resource_id"),
                "conflicting_unit_code": cause.get("conflicting_unit_code"),
            },
        }
        for cause in (failure.conflict_details or [])
    ]
    status = FailureStatus.resolved if failure.status == FailureStatus.retried else failure.status
    return {
        "id": failure.id,
        "program_id": failure.program_id,
        "school_id": failure.school_id,
        "class_name": class_name,
        "section": section,
        "unit_code": failure.unit_code,
        "unit_name": failure.unit_name,
        "student_count": failure.student_count,
        "lecturer_name": failure.lecturer_code,
        "failure_reasons": reasons,
        "attempted_dates": [failure.attempted_date.isoformat()] if failure.attempted_date else [],
        "status": status.value,
        "resolution_notes": failure.resolution_notes,
        "resolved_by": failure.resolved_by,
        "resolved_at": failure.resolved_at,
        "created_at": failure.created_at,
    }
