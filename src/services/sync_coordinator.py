"""Guarded remote operations with local fallback and queued replay.

Every write lands in LocalCache first. The remote store is attempted only
when the monitor reports a connection; any remote failure downgrades the
write to "saved offline" and queues the key. When connectivity comes back,
the queue is drained once per restored transition.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from database.errors import StorageError
from database.keys import remote_target
from database.local_cache import LocalCache
from database.remote_store import RemoteStore
from models.records import DrainReport, ReadResult, WriteOutcome
from network.connectivity import ConnectivityMonitor, ConnectivityStatus
from services.sync_queue import SyncQueue

logger = logging.getLogger(__name__)

RemoteWrite = Callable[[Any], Awaitable[Any]]
RemoteRead = Callable[[], Awaitable[Any]]


class SyncCoordinator:

    def __init__(
        self,
        local_store: LocalCache,
        remote_store: RemoteStore,
        queue: SyncQueue,
        monitor: ConnectivityMonitor,
    ) -> None:
        self._local_store = local_store
        self._remote_store = remote_store
        self.queue = queue
        self.monitor = monitor
        self._locks: Dict[str, asyncio.Lock] = {}
        # holders plus waiters per key; the lock is dropped when it reaches zero
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def local_store(self) -> LocalCache:
        return self._local_store

    @property
    def remote_store(self) -> RemoteStore:
        return self._remote_store

    def start(self) -> None:
        """Subscribe to connectivity transitions. Call from inside the event loop."""
        if self._unsubscribe is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.monitor.subscribe(self._on_connectivity_change)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._drain_task and not self._drain_task.done():
            await self._drain_task
        self._drain_task = None

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def remote_writer_for(self, key: str) -> RemoteWrite:
        collection, doc_id = remote_target(key)

        async def write(payload: Any) -> None:
            await self._remote_store.set(collection, doc_id, payload)

        return write

    def remote_reader_for(self, key: str) -> RemoteRead:
        collection, doc_id = remote_target(key)

        async def read() -> Any:
            return await self._remote_store.get(collection, doc_id)

        return read

    async def guarded_write(self, key: str, payload: Any,
                            remote_write: Optional[RemoteWrite] = None) -> WriteOutcome:
        if remote_write is None:
            remote_write = self.remote_writer_for(key)

        async with self._key_lock(key):
            # StorageError propagates: without a local copy nothing was saved
            self._local_store.write(key, payload)

            if not self.monitor.is_connected:
                self.queue.enqueue(key)
                logger.info(f"Offline, saved {key} locally")
                return WriteOutcome.SAVED_OFFLINE

            try:
                await remote_write(payload)
            except Exception as e:
                logger.warning(f"Remote write for {key} failed, queued for sync: {e}")
                self.queue.enqueue(key)
                return WriteOutcome.SAVED_OFFLINE

            if key in self.queue:
                try:
                    self.queue.acknowledge(key)
                except StorageError as e:
                    logger.error(f"Synced {key} but could not update the sync queue: {e}")
            return WriteOutcome.SYNCED

    async def guarded_read(self, key: str, remote_read: Optional[RemoteRead] = None) -> ReadResult:
        if remote_read is None:
            remote_read = self.remote_reader_for(key)

        async with self._key_lock(key):
            if key in self.queue:
                # pending local write wins over whatever the remote holds
                return self._local_result(key)

            if self.monitor.is_connected:
                try:
                    value = await remote_read()
                except Exception as e:
                    logger.warning(f"Remote read for {key} failed, using local copy: {e}")
                else:
                    if value is not None:
                        self._local_store.write(key, value)
                        return ReadResult(found=True, value=value, source="remote", remote_checked=True)
                    return self._local_result(key, remote_checked=True)

            return self._local_result(key)

    def _local_result(self, key: str, remote_checked: bool = False) -> ReadResult:
        record = self._local_store.read(key)
        if record is None:
            return ReadResult(found=False, remote_checked=remote_checked)
        return ReadResult(found=True, value=record.payload, source="local", remote_checked=remote_checked)

    async def drain_queue(self) -> DrainReport:
        if self._draining:
            logger.debug("Drain already in progress")
            return DrainReport(skipped=True)

        self._draining = True
        report = DrainReport()
        try:
            for snapshot in self.queue.drain_in_order():
                key = snapshot.key
                async with self._key_lock(key):
                    current = self.queue.entry(key)
                    if current is None:
                        continue
                    if current.revision != snapshot.revision:
                        report.deferred.append(key)
                        continue

                    try:
                        record = self._local_store.read(key)
                        if record is None:
                            logger.warning(f"Queued key {key} has no local data, dropping it")
                            self.queue.acknowledge(key, snapshot)
                            continue
                    except StorageError as e:
                        logger.error(f"Could not prepare {key} for replay: {e}")
                        report.failed.append(key)
                        continue

                    try:
                        await self.remote_writer_for(key)(record.payload)
                    except Exception as e:
                        logger.error(f"Replay of {key} failed: {e}")
                        report.failed.append(key)
                        continue

                    # the remote copy is current; a key left queued here is replayed again later
                    try:
                        acknowledged = self.queue.acknowledge(key, snapshot)
                    except StorageError as e:
                        logger.error(f"Replayed {key} but could not update the sync queue: {e}")
                        report.failed.append(key)
                        continue

                    if acknowledged:
                        report.synced.append(key)
                    else:
                        report.deferred.append(key)
        finally:
            self._draining = False

        if report.synced or report.remaining:
            logger.info(
                f"Sync complete: {len(report.synced)} synced, "
                f"{len(report.failed)} failed, {len(report.deferred)} deferred")
        return report

    def _on_connectivity_change(self, status: ConnectivityStatus) -> None:
        if not status.connected or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._schedule_drain)

    def _schedule_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = self._loop.create_task(self._drain_safely())

    async def _drain_safely(self) -> None:
        try:
            await self.drain_queue()
        except Exception as e:
            logger.error(f"Offline data sync failed: {e}")
