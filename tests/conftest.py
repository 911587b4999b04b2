import copy
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Make src importable
REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"
sys.path.insert(0, str(SRC))

from database.errors import ConnectivityError  # noqa: E402
from database.local_cache import LocalCache  # noqa: E402
from database.remote_store import RemoteStore  # noqa: E402
from network.connectivity import ConnectivityMonitor  # noqa: E402
from services.notification_scheduler import NotificationBackend, NotificationScheduler  # noqa: E402
from services.session_cache import SessionCache  # noqa: E402
from services.sync_coordinator import SyncCoordinator  # noqa: E402
from services.sync_queue import SyncQueue  # noqa: E402

# 2025-06-02 is a Monday
MONDAY = datetime(2025, 6, 2)


class FixedClock:

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeRemoteStore(RemoteStore):
    """In-memory RemoteStore with switches for simulating failures."""

    def __init__(self):
        self.documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_all = False
        self.fail_docs = set()
        self.before_set = None
        self._next_id = 0

    def _check(self, op: str, collection: str, doc_id: str):
        self.calls.append((op, collection, doc_id))
        if self.fail_all or (collection, doc_id) in self.fail_docs:
            raise ConnectivityError(f"{op} {collection}/{doc_id} failed")

    async def get(self, collection, doc_id):
        self._check("get", collection, doc_id)
        document = self.documents.get((collection, doc_id))
        return copy.deepcopy(document)

    async def set(self, collection, doc_id, document):
        self._check("set", collection, doc_id)
        if self.before_set is not None:
            await self.before_set(collection, doc_id, document)
        self.documents[(collection, doc_id)] = copy.deepcopy(document)

    async def add(self, collection, document):
        self._next_id += 1
        doc_id = f"u_{self._next_id}"
        await self.set(collection, doc_id, document)
        return doc_id

    async def query(self, collection, field, value):
        self._check("query", collection, "*")
        return [
            (doc_id, copy.deepcopy(document))
            for (coll, doc_id), document in self.documents.items()
            if coll == collection and document.get(field) == value
        ]

    async def ping(self):
        return not self.fail_all

    def sets_for(self, collection: str, doc_id: str) -> int:
        return sum(1 for call in self.calls if call == ("set", collection, doc_id))


class RecordingBackend(NotificationBackend):

    def __init__(self):
        self.scheduled: Dict[str, Tuple[datetime, Dict[str, Any]]] = {}
        self.events: List[Tuple[str, str]] = []

    def schedule_at(self, job_id, trigger_at, payload):
        self.events.append(("schedule", job_id))
        self.scheduled[job_id] = (trigger_at, payload)

    def cancel(self, job_id):
        self.events.append(("cancel", job_id))
        self.scheduled.pop(job_id, None)


@pytest.fixture
def clock():
    return FixedClock(MONDAY.replace(hour=8))


@pytest.fixture
def cache(tmp_path, clock):
    return LocalCache(tmp_path / "cache", clock=clock)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(connected=True)


@pytest.fixture
def queue(cache, clock):
    return SyncQueue(cache, clock=clock)


@pytest.fixture
def coordinator(cache, remote, queue, monitor):
    return SyncCoordinator(cache, remote, queue, monitor)


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def scheduler(backend, clock):
    return NotificationScheduler(backend, clock=clock)


@pytest.fixture
def session():
    return SessionCache()


@pytest.fixture
def signed_in(session):
    session.populate({"id": "u_1", "email": "ana@example.com", "weight": 70.0})
    return session
