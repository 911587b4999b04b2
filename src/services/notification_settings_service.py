import logging

from database.keys import notification_settings_key
from models.records import WriteOutcome
from services.documents import load_or_seed
from services.notification_scheduler import NotificationScheduler
from services.session_cache import SessionCache
from services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


class NotificationSettingsService:

    def __init__(self, session: SessionCache, coordinator: SyncCoordinator,
                 scheduler: NotificationScheduler) -> None:
        self.session = session
        self.coordinator = coordinator
        self.scheduler = scheduler

    async def load(self, user_id: str) -> bool:
        payload = await load_or_seed(self.coordinator, notification_settings_key(user_id), {"enabled": True})
        enabled = bool(payload.get("enabled", True)) if isinstance(payload, dict) else bool(payload)
        self.session.notifications_enabled = enabled
        return enabled

    async def set_enabled(self, enabled: bool) -> WriteOutcome:
        user_id = self.session.require_user_id()
        outcome = await self.coordinator.guarded_write(
            notification_settings_key(user_id), {"enabled": enabled})
        if self.session.user_id != user_id:
            logger.info(f"Session for {user_id} ended while saving reminder settings")
            return outcome
        self.session.notifications_enabled = enabled

        if enabled:
            self.scheduler.schedule_all(self.session.schedules, enabled=True)
        else:
            self.scheduler.cancel_all()
        logger.info(f"Workout reminders {'enabled' if enabled else 'disabled'}")
        return outcome
