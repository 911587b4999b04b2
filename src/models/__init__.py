from models.records import (
    CachedRecord,
    DrainReport,
    NotificationJob,
    ReadResult,
    SyncQueueEntry,
    WriteOutcome,
)
from models.schedule import WEEKDAYS, ScheduleEntry, WorkoutSlot, default_schedules
from models.workout import WorkoutMetrics, WorkoutRecord
from models.account import UserAccount

__all__ = [
    'CachedRecord',
    'DrainReport',
    'NotificationJob',
    'ReadResult',
    'SyncQueueEntry',
    'WriteOutcome',
    'WEEKDAYS',
    'ScheduleEntry',
    'WorkoutSlot',
    'default_schedules',
    'WorkoutMetrics',
    'WorkoutRecord',
    'UserAccount',
]
