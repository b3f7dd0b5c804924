from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging

from anyio import from_thread

from app.models.scheduling_batch import SchedulingBatch
from app.services.notification_hub import timetable_hub

logger = logging.getLogger(__name__)

TimetableObserver = Callable[[dict], None]

_observers: list[TimetableObserver] = []


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def register_timetable_observer(observer: TimetableObserver) -> None:
    if observer not in _observers:
        _observers.append(observer)


def unregister_timetable_observer(observer: TimetableObserver) -> None:
    if observer in _observers:
        _observers.remove(observer)


def clear_timetable_observers() -> None:
    _observers.clear()


def batch_to_event_payload(batch: SchedulingBatch, *, event: str = "timetable.changed") -> dict:
    return {
        "event": event,
        "batch": {
            "id": batch.id,
            "semester_id": batch.semester_id,
            "kind": batch.kind.value,
            "status": batch.status.value,
            "retried_from_batch_id": batch.retried_from_batch_id,
            "item_count": batch.item_count,
            "placed_count": batch.placed_count,
            "failed_count": batch.failed_count,
            "completed_at": _safe_iso(batch.completed_at),
        },
    }


def publish_realtime_event(semester_id: int, payload: dict) -> None:
    try:
        from_thread.run(timetable_hub.publish, semester_id, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime timetable event for semester %s", semester_id, exc_info=True)


def publish_timetable_changed(batch: SchedulingBatch, *, event: str = "timetable.changed") -> dict:
    """Notify observers and connected consoles; called only after commit."""
    payload = batch_to_event_payload(batch, event=event)
    for observer in list(_observers):
        try:
            observer(payload)
        except Exception:
            logger.exception("Timetable observer %r failed for batch %s", observer, batch.id)
    publish_realtime_event(batch.semester_id, payload)
    return payload
