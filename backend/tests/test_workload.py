from app.services.scheduling_types import PerClass, SchedulableItem
from app.services.workload import WorkloadLimit, WorkloadState


def make_item(unit_id, class_id=1, lecturer="L001", credit_hours=3):
    return SchedulableItem(
        unit_id=unit_id,
        unit_code=f"U{unit_id}",
        unit_name=f"Unit {unit_id}",
        semester_id=1,
        class_group=PerClass(class_id),
        student_count=30,
        lecturer_code=lecturer,
        credit_hours=credit_hours,
    )


def test_sections_of_one_unit_count_once():
    state = WorkloadState()
    state.assign(make_item(1, class_id=1))
    state.assign(make_item(1, class_id=2))
    state.assign(make_item(2, credit_hours=4))

    assert state.unit_count("L001") == 2
    assert state.credit_hours("L001") == 7


def test_limits_on_units_and_credit_hours():
    state = WorkloadState(limits={"L001": WorkloadLimit(max_units=3, max_credit_hours=8)})
    state.assign(make_item(1))
    state.assign(make_item(2))

    assert state.exceeded(make_item(1, class_id=9)) is None
    assert state.exceeded(make_item(3)) == "credit hours 9 exceed limit 8"

    state.limits["L001"] = WorkloadLimit(max_units=2, max_credit_hours=18)
    assert state.exceeded(make_item(3)) == "unit count 3 exceeds limit 2"


def test_default_limit_applies_to_lecturers_without_row():
    state = WorkloadState(default_limit=WorkloadLimit(max_units=1, max_credit_hours=18))
    state.assign(make_item(1, lecturer="L002"))
    assert state.exceeded(make_item(2, lecturer="L002")) is not None


def test_unassigned_items_are_never_limited():
    state = WorkloadState(default_limit=WorkloadLimit(max_units=0, max_credit_hours=0))
    assert state.exceeded(make_item(1, lecturer=None)) is None
    state.assign(make_item(1, lecturer=None))
    assert dict(state.units_by_lecturer) == {}
