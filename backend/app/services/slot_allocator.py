from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from app.services.conflict_service import check_placement
from app.services.scheduling_types import (
    CHECK_ORDER,
    BookedSet,
    Candidate,
    CheckPolicy,
    ConflictCause,
    ConflictKind,
    Placement,
    SchedulableItem,
)
from app.services.workload import WorkloadState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationOutcome:
    item: SchedulableItem
    placement: Placement | None = None
    best_attempt: Candidate | None = None
    conflicts: tuple[ConflictCause, ...] = ()
    encountered: tuple[ConflictKind, ...] = ()
    attempts: int = 0
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.placement is not None

    @property
    def failure_kind(self) -> ConflictKind | None:
        if self.ok or not self.conflicts:
            return None
        return self.conflicts[0].kind

    @property
    def failure_reason(self) -> str | None:
        if self.ok or not self.conflicts:
            return None
        first = self.conflicts[0]
        return f"{first.kind.value}: {first.message}"


def order_items(items: Iterable[SchedulableItem]) -> list[SchedulableItem]:
    return sorted(items, key=SchedulableItem.sort_key)


def order_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=Candidate.sort_key)


def _same_mode(item: SchedulableItem, candidate: Candidate) -> bool:
    return candidate.slot.teaching_mode == item.teaching_mode


def _seats(item: SchedulableItem, candidate: Candidate) -> bool:
    return candidate.venue.is_virtual or candidate.venue.capacity >= item.student_count


def _fits(item: SchedulableItem, candidate: Candidate) -> bool:
    return (
        _same_mode(item, candidate)
        and _seats(item, candidate)
        and candidate.slot.duration >= item.required_duration
    )


def _no_fit_outcome(item: SchedulableItem, candidates: Sequence[Candidate]) -> AllocationOutcome:
    """Explain why no candidate could even be tried.

    NoVenueCapacity only when slots exist but every venue is too small;
    an empty calendar or slots that are all too short is NoAvailableSlot.
    """
    mode = item.teaching_mode.value
    same_mode = [candidate for candidate in candidates if _same_mode(item, candidate)]
    if not same_mode:
        cause = ConflictCause(
            kind=ConflictKind.no_available_slot,
            message=f"No {mode} time slot is available in the scheduling window",
            resource_type="slot",
        )
    elif not any(_seats(item, candidate) for candidate in same_mode):
        largest = max(candidate.venue.capacity for candidate in same_mode)
        cause = ConflictCause(
            kind=ConflictKind.no_venue_capacity,
            message=f"No eligible venue seats {item.student_count} students (largest capacity {largest})",
            resource_type="venue",
        )
    else:
        longest = max(candidate.slot.duration for candidate in same_mode)
        cause = ConflictCause(
            kind=ConflictKind.no_available_slot,
            message=f"No {mode} slot lasts {item.required_duration} minutes (longest is {longest})",
            resource_type="slot",
        )
    return AllocationOutcome(item=item, conflicts=(cause,), encountered=(cause.kind,))


def allocate(
    item: SchedulableItem,
    candidates: Sequence[Candidate],
    booked: BookedSet,
    workload: WorkloadState,
    policy: CheckPolicy | None = None,
    *,
    placement_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> AllocationOutcome:
    """Greedy first-fit over deterministically ordered candidates.

    On success the placement is committed into ``booked`` and ``workload``.
    On failure the least-bad attempt is the candidate whose first failing
    check comes latest in CHECK_ORDER; the earliest such candidate wins.
    """
    policy = policy or CheckPolicy()

    existing = booked.find_item(item)
    if existing is not None:
        logger.debug("Item %s %s already placed; skipping", item.unit_code, item.class_ids)
        return AllocationOutcome(item=item, placement=existing, skipped=True)

    eligible = order_candidates(candidate for candidate in candidates if _fits(item, candidate))
    if not eligible:
        return _no_fit_outcome(item, candidates)

    best: Candidate | None = None
    best_rank = -1
    encountered: dict[ConflictKind, None] = {}
    for attempts, candidate in enumerate(eligible, start=1):
        trial = Placement(item=item, slot=candidate.slot, venue=candidate.venue)
        result = check_placement(trial, booked, workload, policy)
        if result.ok:
            placement = Placement(item=item, slot=candidate.slot, venue=candidate.venue, id=placement_id())
            booked.add(placement)
            workload.assign(item)
            return AllocationOutcome(item=item, placement=placement, attempts=attempts)

        kind = result.first.kind
        encountered.setdefault(kind, None)
        rank = CHECK_ORDER.index(kind)
        if rank > best_rank:
            best, best_rank = candidate, rank

    # Full diagnostics for the least-bad attempt.
    trial = Placement(item=item, slot=best.slot, venue=best.venue)
    diagnostics = check_placement(trial, booked, workload, policy, collect_all=True)
    logger.debug(
        "Item %s %s unplaceable after %d attempt(s): %s",
        item.unit_code,
        item.class_ids,
        len(eligible),
        ", ".join(kind.value for kind in encountered),
    )
    return AllocationOutcome(
        item=item,
        best_attempt=best,
        conflicts=diagnostics.causes,
        encountered=tuple(encountered),
        attempts=len(eligible),
    )


def cancelled_outcome(item: SchedulableItem) -> AllocationOutcome:
    cause = ConflictCause(
        kind=ConflictKind.batch_cancelled,
        message="Batch was cancelled before this item was attempted",
    )
    return AllocationOutcome(item=item, conflicts=(cause,), encountered=(cause.kind,))


def plan_batch(
    items: Iterable[SchedulableItem],
    candidates: Sequence[Candidate],
    booked: BookedSet,
    workload: WorkloadState,
    policy: CheckPolicy | None = None,
    *,
    is_cancelled: Callable[[], bool] = lambda: False,
    placement_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> list[AllocationOutcome]:
    """One sequential pass over the ordered worklist; every item gets an outcome."""
    ordered = order_items(items)
    outcomes: list[AllocationOutcome] = []
    cancelled = False
    for index, item in enumerate(ordered):
        if not cancelled and is_cancelled():
            cancelled = True
            logger.info("Batch cancelled; %d remaining item(s) recorded as cancelled", len(ordered) - index)
        if cancelled:
            outcomes.append(cancelled_outcome(item))
            continue
        outcomes.append(allocate(item, candidates, booked, workload, policy, placement_id=placement_id))
    return outcomes
