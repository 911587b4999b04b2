import logging
import threading
from typing import Any, Dict, List, Optional

from database.errors import SessionError
from models.schedule import ScheduleEntry, default_schedules
from models.workout import WorkoutRecord

logger = logging.getLogger(__name__)


class SessionCache:
    """In-memory state of the signed-in user.

    One instance per process, passed explicitly to the services that need
    the current user id.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.user: Optional[Dict[str, Any]] = None
        self.schedules: List[ScheduleEntry] = []
        self.workouts: List[WorkoutRecord] = []
        self.notifications_enabled: bool = True

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self.user.get("id") if self.user else None

    @property
    def is_active(self) -> bool:
        return self.user_id is not None

    def require_user_id(self) -> str:
        user_id = self.user_id
        if not user_id:
            raise SessionError("No user is signed in")
        return user_id

    def populate(
        self,
        user: Dict[str, Any],
        schedules: Optional[List[ScheduleEntry]] = None,
        workouts: Optional[List[WorkoutRecord]] = None,
    ) -> None:
        if not user.get("id"):
            raise SessionError("Session user has no id")
        with self._lock:
            self.user = dict(user)
            self.schedules = list(schedules) if schedules is not None else default_schedules()
            self.workouts = list(workouts or [])
        logger.info(f"Session started for {self.user.get('email', self.user['id'])}")

    def update_user(self, **fields: Any) -> Dict[str, Any]:
        with self._lock:
            if self.user is None:
                raise SessionError("No user is signed in")
            self.user = {**self.user, **fields}
            return dict(self.user)

    def set_schedules(self, schedules: List[ScheduleEntry]) -> None:
        with self._lock:
            self.schedules = list(schedules)

    def set_workouts(self, workouts: List[WorkoutRecord]) -> None:
        with self._lock:
            self.workouts = list(workouts)

    def clear(self) -> None:
        with self._lock:
            self.user = None
            self.schedules = []
            self.workouts = []
            self.notifications_enabled = True
