"""Weekly workout reminders.

Trigger times are pure date arithmetic over the Clock; delivery goes through
a ``NotificationBackend`` so the OS scheduler can be swapped out.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from models.records import NotificationJob
from models.schedule import WEEKDAYS, ScheduleEntry, WorkoutSlot
from utils.clock import Clock, SystemClock
from utils.time_ranges import parse_hh_mm, parse_time_range

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)


class NotificationBackend(ABC):

    @abstractmethod
    def schedule_at(self, job_id: str, trigger_at: datetime, payload: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def cancel(self, job_id: str) -> None:
        """Cancel a pending trigger. Unknown ids are ignored."""


class AsyncioNotificationBackend(NotificationBackend):
    """Delivers reminders with ``loop.call_later`` inside the running process."""

    def __init__(
        self,
        on_fire: Optional[Callable[[str, Dict[str, Any]], None]] = None,
        clock: Optional[Clock] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._on_fire = on_fire or self._default_handler
        self.clock = clock or SystemClock()
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}

    def schedule_at(self, job_id: str, trigger_at: datetime, payload: Dict[str, Any]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self.cancel(job_id)
        delay = max(0.0, (trigger_at - self.clock.now()).total_seconds())
        self._handles[job_id] = loop.call_later(delay, self._fire, job_id, payload)

    def cancel(self, job_id: str) -> None:
        handle = self._handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def pending_ids(self) -> List[str]:
        return list(self._handles)

    def _fire(self, job_id: str, payload: Dict[str, Any]) -> None:
        self._handles.pop(job_id, None)
        try:
            self._on_fire(job_id, payload)
        except Exception as e:
            logger.error(f"Error delivering reminder {job_id}: {e}")

    @staticmethod
    def _default_handler(job_id: str, payload: Dict[str, Any]) -> None:
        logger.info(f"{payload.get('title', 'Reminder')}: {payload.get('body', '')}")


def next_occurrence(weekday: str, hh_mm: str, lead_minutes: int, now: datetime) -> datetime:
    """Next instant a reminder for ``weekday`` at ``hh_mm`` should fire.

    The nearest matching weekday (today included) is used first; if the
    reminder instant is not strictly after ``now`` it moves one week later.
    """
    if weekday not in WEEKDAYS:
        raise ValueError(f"Unknown weekday {weekday!r}")
    if lead_minutes < 0:
        raise ValueError("lead_minutes must be >= 0")

    at = parse_hh_mm(hh_mm)
    days_ahead = (WEEKDAYS.index(weekday) - now.weekday()) % 7
    day = now.date() + timedelta(days=days_ahead)
    trigger = datetime.combine(day, at) - timedelta(minutes=lead_minutes)

    while trigger <= now:
        trigger += WEEK
    return trigger


def slot_end(slot: WorkoutSlot, weekday: str, now: datetime) -> datetime:
    """Absolute end of the occurrence a slot was booked for.

    Slots are booked for the first matching weekday at or after their
    ``createdAt``. Slots without a creation time are read as belonging to
    the current week's occurrence of their weekday.
    """
    start, end = parse_time_range(slot.time)
    day_index = WEEKDAYS.index(weekday)

    if slot.createdAt is not None:
        anchor = slot.createdAt.replace(tzinfo=None)
        day = anchor.date() + timedelta(days=(day_index - anchor.weekday()) % 7)
        end_at = datetime.combine(day, end)
        if end <= start:
            end_at += timedelta(days=1)
        if end_at <= anchor:
            end_at += WEEK
        return end_at

    day = now.date() + timedelta(days=day_index - now.weekday())
    end_at = datetime.combine(day, end)
    if end <= start:
        end_at += timedelta(days=1)
    return end_at


class NotificationScheduler:

    def __init__(self, backend: NotificationBackend, clock: Optional[Clock] = None):
        self.backend = backend
        self.clock = clock or SystemClock()
        self._pending: Dict[str, NotificationJob] = {}

    @property
    def pending(self) -> Dict[str, NotificationJob]:
        return dict(self._pending)

    def build_payload(self, slot: WorkoutSlot, weekday: str) -> Dict[str, Any]:
        return {
            "title": "Workout Reminder",
            "body": f"Your {slot.name} workout will start at {slot.start_label} at {slot.location}",
            "data": {"workout": slot.model_dump(mode="json"), "day": weekday},
        }

    def schedule_job(self, slot: WorkoutSlot, weekday: str) -> NotificationJob:
        # always forwarded to the backend: a previous launch may have left one
        self.cancel_job(slot.id)

        trigger_at = next_occurrence(weekday, slot.start_label, slot.reminderLeadMinutes, self.clock.now())
        job = NotificationJob(id=slot.id, triggerAt=trigger_at, payload=self.build_payload(slot, weekday))
        self.backend.schedule_at(job.id, job.triggerAt, job.payload)
        self._pending[job.id] = job
        logger.info(f"Scheduled reminder for {slot.name} at {trigger_at:%Y-%m-%d %H:%M}")
        return job

    def cancel_job(self, job_id: str) -> None:
        self.backend.cancel(job_id)
        self._pending.pop(job_id, None)

    def cancel_all(self) -> None:
        for job_id in list(self._pending):
            self.cancel_job(job_id)

    def handle_fired(self, job_id: str) -> None:
        self._pending.pop(job_id, None)

    def schedule_all(self, schedules: List[ScheduleEntry], enabled: bool = True) -> List[NotificationJob]:
        """Full reload: drop every pending job, then schedule reminder-enabled slots."""
        self.cancel_all()
        if not enabled:
            return []

        jobs = []
        for entry in schedules:
            for slot in entry.workouts:
                # clear triggers orphaned by an earlier launch
                self.backend.cancel(slot.id)
                if slot.reminderEnabled:
                    jobs.append(self.schedule_job(slot, entry.day))
        return jobs

    def expire_workout_slots(self, schedules: List[ScheduleEntry],
                             now: Optional[datetime] = None) -> Optional[List[ScheduleEntry]]:
        """Drop slots whose end has passed. Returns None when nothing expired."""
        now = now or self.clock.now()
        changed = False
        updated = []

        for entry in schedules:
            keep = []
            for slot in entry.workouts:
                if slot_end(slot, entry.day, now) < now:
                    self.cancel_job(slot.id)
                    logger.info(f"Workout {slot.name} on {entry.day} has ended, removing it")
                    changed = True
                else:
                    keep.append(slot)
            updated.append(entry.model_copy(update={"workouts": keep}) if len(keep) != len(entry.workouts) else entry)

        return updated if changed else None
