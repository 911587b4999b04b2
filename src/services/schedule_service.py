from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from database.errors import SessionError
from database.keys import schedules_key
from models.records import WriteOutcome
from models.schedule import (
    WEEKDAYS,
    ScheduleEntry,
    WorkoutSlot,
    default_schedules,
    ensure_week,
    find_slot,
    schedules_from_payload,
    schedules_to_payload,
)
from services.documents import load_or_seed
from services.notification_scheduler import NotificationScheduler
from services.session_cache import SessionCache
from services.sync_coordinator import SyncCoordinator
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class ScheduleService:
    """Weekly schedule for the signed-in user.

    All persistence, user edits and the expiry sweep alike, goes through
    ``SyncCoordinator.guarded_write``.
    """

    def __init__(
        self,
        session: SessionCache,
        coordinator: SyncCoordinator,
        scheduler: NotificationScheduler,
        clock: Optional[Clock] = None,
    ) -> None:
        self.session = session
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self._sweep_task: Optional[asyncio.Task] = None
        # serializes read-modify-write of session.schedules across awaits
        self._edit_lock = asyncio.Lock()

    async def load(self, user_id: str) -> List[ScheduleEntry]:
        payload = await load_or_seed(
            self.coordinator, schedules_key(user_id), schedules_to_payload(default_schedules()))
        schedules = schedules_from_payload(payload)
        logger.info(f"Loaded schedules: {sum(len(e.workouts) for e in schedules)} workout(s)")
        return schedules

    @property
    def edit_lock(self) -> asyncio.Lock:
        return self._edit_lock

    async def save(self, schedules: List[ScheduleEntry]) -> WriteOutcome:
        user_id = self.session.require_user_id()
        schedules = ensure_week(schedules)
        outcome = await self.coordinator.guarded_write(
            schedules_key(user_id), schedules_to_payload(schedules))
        if self.session.user_id == user_id:
            self.session.set_schedules(schedules)
        else:
            logger.info(f"Session for {user_id} ended while saving, schedule kept in storage only")
        return outcome

    async def _edit(self, user_id: str,
                    change: Callable[[List[ScheduleEntry]], Optional[List[ScheduleEntry]]]) -> Optional[WriteOutcome]:
        async with self._edit_lock:
            if self.session.user_id != user_id:
                raise SessionError(f"Session for {user_id} ended before the change was saved")
            updated = change(self.session.schedules)
            if updated is None:
                return None
            return await self.save(updated)

    async def add_slot(
        self,
        day: str,
        time: str,
        name: str,
        location: Optional[str] = None,
        reminder_enabled: bool = False,
        reminder_lead_minutes: int = 0,
    ) -> WorkoutSlot:
        user_id = self.session.require_user_id()
        if day not in WEEKDAYS:
            raise ValueError(f"Unknown weekday {day!r}")

        slot = WorkoutSlot(
            time=time,
            name=name,
            location=location or "No location set",
            reminderEnabled=reminder_enabled,
            reminderLeadMinutes=reminder_lead_minutes,
            userId=user_id,
            createdAt=self.clock.now(),
        )

        await self._edit(user_id, lambda schedules: [
            entry.model_copy(update={"workouts": [*entry.workouts, slot]}) if entry.day == day else entry
            for entry in schedules
        ])

        if slot.reminderEnabled and self.session.notifications_enabled and self.session.user_id == user_id:
            self.scheduler.schedule_job(slot, day)
        return slot

    async def delete_slot(self, slot_id: str) -> bool:
        user_id = self.session.require_user_id()

        def remove(schedules: List[ScheduleEntry]) -> Optional[List[ScheduleEntry]]:
            if find_slot(schedules, slot_id) is None:
                return None
            return [
                entry.model_copy(update={"workouts": [s for s in entry.workouts if s.id != slot_id]})
                for entry in schedules
            ]

        self.scheduler.cancel_job(slot_id)
        return await self._edit(user_id, remove) is not None

    def reschedule_all(self) -> None:
        self.scheduler.schedule_all(self.session.schedules, enabled=self.session.notifications_enabled)

    async def sweep_expired(self) -> Optional[WriteOutcome]:
        """Remove finished slots. Returns None when nothing expired (no write)."""
        user_id = self.session.user_id
        if user_id is None:
            return None
        try:
            return await self._edit(
                user_id, lambda schedules: self.scheduler.expire_workout_slots(schedules, self.clock.now()))
        except SessionError:
            return None

    async def run_expiry_sweep(self, interval: float = 300.0) -> None:
        while True:
            try:
                await self.sweep_expired()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}")
            await asyncio.sleep(interval)

    def start_sweep(self, interval: float = 300.0) -> asyncio.Task:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self.run_expiry_sweep(interval))
        return self._sweep_task

    async def stop_sweep(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
