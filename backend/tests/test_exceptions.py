from app.core.exceptions import (
    AppError,
    BatchInProgressError,
    InvalidTransitionError,
    ResourceNotFoundError,
    SchedulerError,
    WorklistError,
)


def test_scheduler_error_structure():
    err = SchedulerError(message="Test error", details={"foo": "bar"})
    assert err.status_code == 400
    assert err.message == "Test error"
    assert err.details == {"foo": "bar"}
    assert isinstance(err, AppError)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_worklist_error_is_a_scheduler_error():
    err = WorklistError("Item UNITA has no classes")
    assert isinstance(err, SchedulerError)
    assert err.status_code == 422


def test_conflict_statuses():
    assert BatchInProgressError(3).status_code == 409
    assert BatchInProgressError(3).details == {"semester_id": 3}
    assert InvalidTransitionError("Failure is already pending").status_code == 409
    assert ResourceNotFoundError("Scheduling batch", "b1").status_code == 404
