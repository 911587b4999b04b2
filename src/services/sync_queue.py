"""Durable set of cache keys whose local copy is ahead of the remote copy."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from typing import Iterator, List, Optional

from database.errors import StorageError
from database.keys import SYNC_QUEUE_KEY
from database.local_cache import LocalCache
from models.records import SyncQueueEntry
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class SyncQueue:
    """Insertion-ordered, de-duplicated queue persisted in LocalCache.

    The persisted form is a JSON array of keys under ``syncQueue``. It is
    rewritten wholesale on every change, and the in-memory view only moves
    once that write has succeeded.
    """

    def __init__(self, cache: LocalCache, clock: Optional[Clock] = None):
        self.cache = cache
        self.clock = clock or SystemClock()
        self._entries: "OrderedDict[str, SyncQueueEntry]" = OrderedDict()
        self._revisions = itertools.count(1)
        self._lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        record = self.cache.read(SYNC_QUEUE_KEY)
        if record is None:
            return

        stored = record.payload if isinstance(record.payload, list) else []
        kept: List[str] = []
        for key in stored:
            if not isinstance(key, str) or key in kept:
                continue
            if self.cache.read(key) is None:
                logger.warning(f"Dropping queued key without local data: {key}")
                continue
            kept.append(key)

        now = self.clock.now()
        for key in kept:
            self._entries[key] = SyncQueueEntry(key=key, enqueuedAt=now, revision=next(self._revisions))

        if kept != stored:
            self._persist(kept)
        if kept:
            logger.info(f"Restored {len(kept)} pending sync key(s)")

    def _persist(self, keys: List[str]) -> None:
        self.cache.write(SYNC_QUEUE_KEY, keys)

    def enqueue(self, key: str) -> SyncQueueEntry:
        """Queue ``key`` for replay. Re-enqueueing keeps the original position."""
        if key == SYNC_QUEUE_KEY:
            raise ValueError("The sync queue cannot queue itself")
        if self.cache.read(key) is None:
            raise ValueError(f"Cannot queue {key!r}: no local record")

        with self._lock:
            entry = SyncQueueEntry(key=key, enqueuedAt=self.clock.now(), revision=next(self._revisions))
            if key not in self._entries:
                self._persist(list(self._entries) + [key])
            self._entries[key] = entry
            logger.debug(f"Queued {key} (revision {entry.revision})")
            return entry

    def acknowledge(self, key: str, expected: Optional[SyncQueueEntry] = None) -> bool:
        """Remove ``key`` after a successful replay.

        With ``expected`` set, a key re-enqueued after that snapshot is kept
        for the next drain and False is returned.
        """
        with self._lock:
            current = self._entries.get(key)
            if current is None:
                return False
            if expected is not None and current.revision != expected.revision:
                logger.info(f"{key} changed during replay, keeping it queued")
                return False

            remaining = [k for k in self._entries if k != key]
            try:
                self._persist(remaining)
            except StorageError as e:
                logger.error(f"Could not persist acknowledgement of {key}: {e}")
                raise
            del self._entries[key]
            return True

    def drain_in_order(self) -> Iterator[SyncQueueEntry]:
        """Yield the queued entries in first-enqueue order without removing them.

        The snapshot is taken when iteration starts; each call returns a new
        generator.
        """
        with self._lock:
            snapshot = list(self._entries.values())
        for entry in snapshot:
            yield entry

    def entry(self, key: str) -> Optional[SyncQueueEntry]:
        with self._lock:
            return self._entries.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
