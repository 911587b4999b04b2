from datetime import datetime

import pytest

from database.keys import (
    notification_settings_key,
    remote_target,
    schedules_key,
    workouts_key,
)
from models.account import UserAccount
from models.schedule import (
    MAX_LEAD_MINUTES,
    ScheduleEntry,
    WorkoutSlot,
    default_schedules,
    ensure_week,
    schedules_from_payload,
    schedules_to_payload,
)
from models.workout import WorkoutMetrics, WorkoutRecord, workouts_from_payload, workouts_to_payload
from utils.time_ranges import format_time_range, parse_hh_mm, parse_time_range


def test_cache_keys_and_remote_targets():
    assert schedules_key("u_1") == "schedules:u_1"
    assert remote_target(workouts_key("u_1")) == ("workouts", "u_1")
    assert remote_target(notification_settings_key("u_1")) == ("notifications", "u_1")
    for key in ("session", "syncQueue", "schedules:", "unknown:u_1"):
        with pytest.raises(ValueError):
            remote_target(key)
    with pytest.raises(ValueError):
        schedules_key("")


def test_time_range_parsing():
    start, end = parse_time_range("06:30 - 07:45")
    assert format_time_range(start, end) == "06:30 - 07:45"
    assert parse_hh_mm("23:59").minute == 59
    for bad in ("24:00 - 25:00", "7:00 - 08:00", "07:60 - 08:00", "07:00"):
        with pytest.raises(ValueError):
            parse_time_range(bad)


def test_workout_slot_defaults_and_validation():
    slot = WorkoutSlot(time="18:00 - 19:00", name="Legs")
    assert slot.id.startswith("w_")
    assert slot.location == "No location set"
    assert slot.start_label == "18:00"
    assert slot.status == "scheduled"

    with pytest.raises(ValueError):
        WorkoutSlot(time="18:00 - 19:00", name="Legs", reminderLeadMinutes=-1)
    with pytest.raises(ValueError):
        WorkoutSlot(time="18:00 - 19:00", name="Legs", reminderLeadMinutes=MAX_LEAD_MINUTES)


def test_ensure_week_fills_missing_days_in_order():
    week = ensure_week([ScheduleEntry(id=5, day="Friday")])
    assert [entry.day for entry in week] == [
        "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
    assert [entry.id for entry in week] == list(range(1, 8))


def test_ensure_week_rejects_duplicates():
    slot = WorkoutSlot(time="18:00 - 19:00", name="Legs")
    with pytest.raises(ValueError):
        ensure_week([ScheduleEntry(id=1, day="Monday"), ScheduleEntry(id=1, day="Monday")])
    with pytest.raises(ValueError):
        ensure_week([
            ScheduleEntry(id=1, day="Monday", workouts=[slot]),
            ScheduleEntry(id=2, day="Tuesday", workouts=[slot]),
        ])


def test_schedule_payload_accepts_bare_list():
    payload = schedules_to_payload(default_schedules())
    assert schedules_from_payload(payload) == default_schedules()
    assert len(schedules_from_payload(payload["schedules"][:2])) == 7
    assert len(schedules_from_payload(None)) == 7


def test_workouts_sorted_newest_first():
    metrics = WorkoutMetrics(weightBefore=70, weightAfter=69, heartRateBefore=70, heartRateAfter=120)
    old = WorkoutRecord(date=datetime(2025, 6, 1), duration=30, metrics=metrics)
    new = WorkoutRecord(date=datetime(2025, 6, 3), duration=30, metrics=metrics)

    records = workouts_from_payload(workouts_to_payload([old, new]))

    assert [record.id for record in records] == [new.id, old.id]


def test_user_account_views():
    account = UserAccount(email="ana@example.com", height=1.7, weight=70, passwordHash="h")
    assert account.id.startswith("u_")
    assert "passwordHash" not in account.session_blob()
    assert "id" not in account.remote_document()
    with pytest.raises(ValueError):
        UserAccount(email="ana@example.com", height=3.0, weight=70)
