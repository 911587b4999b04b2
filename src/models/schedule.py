from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator
from ulid import ULID

from utils.time_ranges import parse_time_range

# index matches datetime.weekday()
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

MAX_LEAD_MINUTES = 7 * 24 * 60


class WorkoutSlot(BaseModel):
    id: str = Field(default_factory=lambda: f"w_{ULID.from_datetime(datetime.now())}")
    time: str
    name: str
    location: str = "No location set"
    reminderEnabled: bool = False
    reminderLeadMinutes: int = Field(default=0, ge=0, lt=MAX_LEAD_MINUTES)
    status: str = "scheduled"
    userId: Optional[str] = None
    createdAt: Optional[datetime] = None

    @field_validator("time")
    @classmethod
    def _check_time_range(cls, value: str) -> str:
        parse_time_range(value)
        return value.strip()

    @property
    def start_time(self) -> time:
        return parse_time_range(self.time)[0]

    @property
    def end_time(self) -> time:
        return parse_time_range(self.time)[1]

    @property
    def start_label(self) -> str:
        return self.time.split("-")[0].strip()


class ScheduleEntry(BaseModel):
    id: int = Field(ge=1, le=7)
    day: str
    workouts: List[WorkoutSlot] = Field(default_factory=list)

    @field_validator("day")
    @classmethod
    def _check_day(cls, value: str) -> str:
        if value not in WEEKDAYS:
            raise ValueError(f"Unknown weekday {value!r}")
        return value

    @model_validator(mode="after")
    def _check_id_matches_day(self) -> "ScheduleEntry":
        if WEEKDAYS.index(self.day) + 1 != self.id:
            raise ValueError(f"Schedule id {self.id} does not belong to {self.day}")
        return self


def default_schedules() -> List[ScheduleEntry]:
    return [ScheduleEntry(id=i + 1, day=day) for i, day in enumerate(WEEKDAYS)]


def ensure_week(schedules: Iterable[ScheduleEntry]) -> List[ScheduleEntry]:
    """Return exactly seven entries in weekday order, filling missing days.

    Raises ``ValueError`` when a day appears twice or a slot id is reused,
    since slot ids key notification jobs across the whole week.
    """
    by_day: Dict[str, ScheduleEntry] = {}
    seen_ids = set()
    for entry in schedules:
        if entry.day in by_day:
            raise ValueError(f"Duplicate schedule entry for {entry.day}")
        for slot in entry.workouts:
            if slot.id in seen_ids:
                raise ValueError(f"Workout slot id {slot.id} is not unique")
            seen_ids.add(slot.id)
        by_day[entry.day] = entry

    return [
        by_day.get(day) or ScheduleEntry(id=i + 1, day=day)
        for i, day in enumerate(WEEKDAYS)
    ]


def find_slot(schedules: Iterable[ScheduleEntry], slot_id: str) -> Optional[Tuple[ScheduleEntry, WorkoutSlot]]:
    for entry in schedules:
        for slot in entry.workouts:
            if slot.id == slot_id:
                return entry, slot
    return None


def schedules_to_payload(schedules: Iterable[ScheduleEntry]) -> Dict[str, Any]:
    return {"schedules": [entry.model_dump(mode="json") for entry in schedules]}


def schedules_from_payload(payload: Any) -> List[ScheduleEntry]:
    # local backups of older builds stored the bare list
    raw = payload.get("schedules", []) if isinstance(payload, dict) else payload
    return ensure_week(ScheduleEntry.model_validate(item) for item in raw or [])
