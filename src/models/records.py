from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CachedRecord:
    """One document as held by LocalCache. Replaced wholesale on every write."""
    key: str
    payload: Any
    lastWriteAt: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "payload": self.payload,
            "lastWriteAt": self.lastWriteAt.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedRecord":
        return cls(
            key=data["key"],
            payload=data.get("payload"),
            lastWriteAt=datetime.fromisoformat(data["lastWriteAt"]),
        )


@dataclass(frozen=True)
class SyncQueueEntry:
    key: str
    enqueuedAt: datetime
    # bumped on every enqueue; enqueuedAt alone can collide within one clock tick
    revision: int


@dataclass(frozen=True)
class NotificationJob:
    id: str
    triggerAt: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


class WriteOutcome(str, Enum):
    SYNCED = "synced"
    SAVED_OFFLINE = "saved-offline"


@dataclass(frozen=True)
class ReadResult:
    found: bool
    value: Any = None
    source: Optional[str] = None  # "remote" | "local"
    # remote answered (possibly with nothing); False when it was skipped or failed
    remote_checked: bool = False


@dataclass
class DrainReport:
    synced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def remaining(self) -> List[str]:
        return self.failed + self.deferred
