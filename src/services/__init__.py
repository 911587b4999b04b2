"""Service layer for FitHub Sync."""

from .sync_queue import SyncQueue
from .sync_coordinator import SyncCoordinator
from .notification_scheduler import NotificationScheduler
from .session_cache import SessionCache

__all__ = ["SyncQueue", "SyncCoordinator", "NotificationScheduler", "SessionCache"]
