from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from app.services.scheduling_types import Placement, SchedulableItem


@dataclass(frozen=True)
class WorkloadLimit:
    max_units: int
    max_credit_hours: int


@dataclass
class WorkloadState:
    """Per-lecturer counters for one semester.

    Units are counted once per distinct unit id: a lecturer taking several
    sections of the same unit carries it (and its credit hours) once.
    """

    limits: dict[str, WorkloadLimit] = field(default_factory=dict)
    default_limit: WorkloadLimit | None = None
    units_by_lecturer: dict[str, dict[int, int]] = field(default_factory=lambda: defaultdict(dict))

    @classmethod
    def from_placements(
        cls,
        limits: dict[str, WorkloadLimit],
        placements: Iterable[Placement],
        *,
        default_limit: WorkloadLimit | None = None,
    ) -> "WorkloadState":
        state = cls(limits=dict(limits), default_limit=default_limit)
        for placement in placements:
            state.assign(placement.item)
        return state

    def limit_for(self, lecturer_code: str) -> WorkloadLimit | None:
        return self.limits.get(lecturer_code, self.default_limit)

    def unit_count(self, lecturer_code: str) -> int:
        return len(self.units_by_lecturer.get(lecturer_code, {}))

    def credit_hours(self, lecturer_code: str) -> int:
        return sum(self.units_by_lecturer.get(lecturer_code, {}).values())

    def projected(self, item: SchedulableItem) -> tuple[int, int]:
        lecturer_code = item.lecturer_code or ""
        units = dict(self.units_by_lecturer.get(lecturer_code, {}))
        units.setdefault(item.unit_id, item.credit_hours)
        return len(units), sum(units.values())

    def exceeded(self, item: SchedulableItem) -> str | None:
        """Return a description of the breached limit, or None."""
        if not item.lecturer_code:
            return None
        limit = self.limit_for(item.lecturer_code)
        if limit is None:
            return None
        units, hours = self.projected(item)
        if units > limit.max_units:
            return f"unit count {units} exceeds limit {limit.max_units}"
        if hours > limit.max_credit_hours:
            return f"credit hours {hours} exceed limit {limit.max_credit_hours}"
        return None

    def assign(self, item: SchedulableItem) -> None:
        if not item.lecturer_code:
            return
        self.units_by_lecturer[item.lecturer_code].setdefault(item.unit_id, item.credit_hours)
