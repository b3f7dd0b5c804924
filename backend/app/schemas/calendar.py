from __future__ import annotations

import re

DAY_ORDER = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

DAY_VALUES = set(DAY_ORDER)

DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_to_minutes(value: str) -> int:
    # Database TIME columns often come back as HH:MM:SS.
    cleaned = value.strip()[:5]
    if not TIME_PATTERN.match(cleaned):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = cleaned.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


def normalize_day(value: str) -> str:
    stripped = value.strip()
    return DAY_SHORT_MAP.get(stripped, stripped.capitalize())


def day_index(value: str) -> int:
    normalized = normalize_day(value)
    if normalized not in DAY_VALUES:
        raise ValueError(f"Unknown day: {value}")
    return DAY_ORDER.index(normalized)
