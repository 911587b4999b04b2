"""
CacheKey namespacing shared by LocalCache, SyncQueue and RemoteStore.

Per-user keys look like ``<namespace>:<userId>`` and map onto one remote
document each. ``session`` and ``syncQueue`` are local-only.
"""

from typing import Tuple

SESSION_KEY = "session"
SYNC_QUEUE_KEY = "syncQueue"

SCHEDULES = "schedules"
WORKOUTS = "workouts"
NOTIFICATION_SETTINGS = "notificationSettings"

USERS_COLLECTION = "users"

# cache namespace -> remote collection
REMOTE_COLLECTIONS = {
    SCHEDULES: "schedules",
    WORKOUTS: "workouts",
    NOTIFICATION_SETTINGS: "notifications",
}


def _user_key(namespace: str, user_id: str) -> str:
    if not user_id:
        raise ValueError("user id is required to build a cache key")
    return f"{namespace}:{user_id}"


def schedules_key(user_id: str) -> str:
    return _user_key(SCHEDULES, user_id)


def workouts_key(user_id: str) -> str:
    return _user_key(WORKOUTS, user_id)


def notification_settings_key(user_id: str) -> str:
    return _user_key(NOTIFICATION_SETTINGS, user_id)


def remote_target(key: str) -> Tuple[str, str]:
    """Return the ``(collection, doc_id)`` a cache key is replayed to."""
    namespace, sep, user_id = key.partition(":")
    if not sep or not user_id or namespace not in REMOTE_COLLECTIONS:
        raise ValueError(f"Cache key {key!r} has no remote counterpart")
    return REMOTE_COLLECTIONS[namespace], user_id
