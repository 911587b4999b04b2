import asyncio
import logging
from typing import Any, Dict, List, Optional

from database.errors import SessionError
from database.keys import SESSION_KEY, workouts_key
from models.records import WriteOutcome
from models.workout import WorkoutMetrics, WorkoutRecord, workouts_from_payload, workouts_to_payload
from services.documents import load_or_seed
from services.session_cache import SessionCache
from services.sync_coordinator import SyncCoordinator
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

CHART_METRICS = {
    "weight": lambda record: record.metrics.weightAfter,
    "heartRate": lambda record: record.metrics.heartRateAfter,
}


class WorkoutService:

    def __init__(self, session: SessionCache, coordinator: SyncCoordinator,
                 clock: Optional[Clock] = None) -> None:
        self.session = session
        self.coordinator = coordinator
        self.clock = clock or SystemClock()
        self._edit_lock = asyncio.Lock()

    @property
    def edit_lock(self) -> asyncio.Lock:
        return self._edit_lock

    async def load(self, user_id: str) -> List[WorkoutRecord]:
        payload = await load_or_seed(self.coordinator, workouts_key(user_id), workouts_to_payload([]))
        records = workouts_from_payload(payload)
        logger.info(f"Loaded {len(records)} workout record(s)")
        return records

    async def add_record(
        self,
        duration: int,
        metrics: Dict[str, Any],
        notes: str = "",
        media: Optional[List[str]] = None,
    ) -> WorkoutRecord:
        """Save a workout and replace the stored collection, newest first.

        The session user's weight follows ``weightAfter`` of the new record.
        """
        user_id = self.session.require_user_id()
        record = WorkoutRecord(
            date=self.clock.now(),
            duration=duration,
            metrics=WorkoutMetrics.model_validate(metrics),
            notes=notes,
            media=list(media or []),
            userId=user_id,
        )

        async with self._edit_lock:
            if self.session.user_id != user_id:
                raise SessionError(f"Session for {user_id} ended before the workout was saved")
            records = [record, *self.session.workouts]
            outcome = await self.coordinator.guarded_write(workouts_key(user_id), workouts_to_payload(records))

            if self.session.user_id != user_id:
                logger.info(f"Session for {user_id} ended while saving, workout kept in storage only")
                return record
            self.session.set_workouts(records)
            user = self.session.update_user(weight=record.metrics.weightAfter)
            self.coordinator.local_store.write(SESSION_KEY, user)

        if outcome is WriteOutcome.SAVED_OFFLINE:
            logger.info("Workout saved locally (offline mode)")
        return record

    def chart_series(self, metric: str, limit: int = 7) -> List[float]:
        """Values of ``metric`` for the latest ``limit`` records, oldest first."""
        if metric not in CHART_METRICS:
            raise ValueError(f"Unknown chart metric {metric!r}")
        ordered = sorted(self.session.workouts, key=lambda record: record.date)
        return [CHART_METRICS[metric](record) for record in ordered[-limit:]] if limit > 0 else []
