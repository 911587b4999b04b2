import asyncio

import pytest

from database.errors import AuthenticationError, ConnectivityError, SessionError
from database.keys import SESSION_KEY
from services.account_service import AccountService, hash_password, verify_password
from services.notification_settings_service import NotificationSettingsService
from services.schedule_service import ScheduleService
from services.workout_service import WorkoutService


@pytest.fixture
def accounts(session, coordinator, scheduler, clock):
    schedules = ScheduleService(session, coordinator, scheduler, clock=clock)
    workouts = WorkoutService(session, coordinator, clock=clock)
    settings = NotificationSettingsService(session, coordinator, scheduler)
    return AccountService(session, coordinator, scheduler, schedules, workouts, settings)


async def _register(accounts, email="Ana@Example.com", password="secret"):
    return await accounts.register(email, password, "Ana", 1.7, 70.0)


def test_password_hash_round_trip():
    encoded = hash_password("secret")
    assert encoded.startswith("pbkdf2_sha256$")
    assert "secret" not in encoded
    assert verify_password("secret", encoded)
    assert not verify_password("Secret", encoded)
    assert not verify_password("secret", None)
    assert not verify_password("secret", "garbage")


@pytest.mark.asyncio
async def test_register_stores_user_without_plain_password(accounts, remote):
    account = await _register(accounts)

    document = remote.documents[("users", account.id)]
    assert document["email"] == "ana@example.com"
    assert document["nickname"] == "Ana"
    assert verify_password("secret", document["passwordHash"])
    assert "id" not in document


@pytest.mark.asyncio
async def test_register_rejects_duplicate_email(accounts):
    await _register(accounts)
    with pytest.raises(AuthenticationError):
        await _register(accounts, email="ana@example.com")


@pytest.mark.asyncio
async def test_register_rejects_short_password(accounts):
    with pytest.raises(AuthenticationError):
        await _register(accounts, password="ab")


@pytest.mark.asyncio
async def test_register_needs_connection(accounts, monitor):
    monitor.report(False)
    with pytest.raises(ConnectivityError):
        await _register(accounts)


@pytest.mark.asyncio
async def test_login_populates_session_and_seeds_documents(accounts, session, cache, remote):
    account = await _register(accounts)

    user = await accounts.login("ana@example.com", "secret")

    assert user["id"] == account.id
    assert "passwordHash" not in user
    assert session.user_id == account.id
    assert len(session.schedules) == 7
    assert cache.read(SESSION_KEY).payload["id"] == account.id
    assert ("schedules", account.id) in remote.documents
    assert ("workouts", account.id) in remote.documents
    assert remote.documents[("notifications", account.id)] == {"enabled": True}


@pytest.mark.asyncio
async def test_login_with_wrong_password(accounts, session):
    await _register(accounts)

    with pytest.raises(AuthenticationError):
        await accounts.login("ana@example.com", "nope")
    with pytest.raises(AuthenticationError):
        await accounts.login("nobody@example.com", "secret")
    assert not session.is_active


@pytest.mark.asyncio
async def test_restore_session_offline_uses_local_data(accounts, session, monitor, remote):
    account = await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    await accounts.schedules.add_slot("Monday", "18:00 - 19:00", "Legs", reminder_enabled=True)
    session.clear()

    monitor.report(False)
    calls_before = len(remote.calls)
    user = await accounts.restore_session()

    assert user["id"] == account.id
    assert len(remote.calls) == calls_before
    monday = session.schedules[0]
    assert [slot.name for slot in monday.workouts] == ["Legs"]
    assert monday.workouts[0].id in accounts.scheduler.pending


@pytest.mark.asyncio
async def test_restore_session_refreshes_profile_online(accounts, session, remote):
    account = await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    remote.documents[("users", account.id)]["nickname"] = "Annie"

    user = await accounts.restore_session()

    assert user["nickname"] == "Annie"
    assert "passwordHash" not in user
    assert session.user["nickname"] == "Annie"


@pytest.mark.asyncio
async def test_restore_without_stored_session(accounts):
    assert await accounts.restore_session() is None


@pytest.mark.asyncio
async def test_logout_clears_everything(accounts, session, cache, scheduler):
    await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    await accounts.schedules.add_slot("Monday", "18:00 - 19:00", "Legs", reminder_enabled=True)

    await accounts.logout()

    assert not session.is_active
    assert cache.read(SESSION_KEY) is None
    assert scheduler.pending == {}


@pytest.mark.asyncio
async def test_change_password(accounts, session, remote):
    account = await _register(accounts)
    await accounts.login("ana@example.com", "secret")

    with pytest.raises(AuthenticationError):
        await accounts.change_password("wrong", "better")

    await accounts.change_password("secret", "better")

    assert not session.is_active
    assert verify_password("better", remote.documents[("users", account.id)]["passwordHash"])
    await accounts.login("ana@example.com", "better")


@pytest.mark.asyncio
async def test_change_password_requires_session(accounts):
    with pytest.raises(SessionError):
        await accounts.change_password("secret", "better")


async def _hold_remote_writes(remote):
    release = asyncio.Event()

    async def gate(collection, doc_id, document):
        await release.wait()

    remote.before_set = gate
    return release


@pytest.mark.asyncio
async def test_logout_waits_for_slot_being_saved(accounts, session, remote, cache, backend):
    await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    release = await _hold_remote_writes(remote)

    adding = asyncio.create_task(accounts.schedules.add_slot(
        "Monday", "18:00 - 19:00", "Legs", reminder_enabled=True))
    await asyncio.sleep(0)
    leaving = asyncio.create_task(accounts.logout())
    await asyncio.sleep(0)
    assert not leaving.done()

    release.set()
    slot = await adding
    await leaving

    assert session.user is None
    assert session.schedules == []
    assert accounts.scheduler.pending == {}
    assert backend.scheduled == {}
    assert cache.read(SESSION_KEY) is None
    stored = remote.documents[("schedules", slot.userId)]["schedules"][0]["workouts"]
    assert [item["id"] for item in stored] == [slot.id]


@pytest.mark.asyncio
async def test_logout_waits_for_workout_being_saved(accounts, session, remote, cache):
    await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    release = await _hold_remote_writes(remote)
    metrics = {"weightBefore": 70.0, "weightAfter": 69.5, "heartRateBefore": 70, "heartRateAfter": 120}

    adding = asyncio.create_task(accounts.workouts.add_record(30, metrics))
    await asyncio.sleep(0)
    leaving = asyncio.create_task(accounts.logout())
    await asyncio.sleep(0)

    release.set()
    await adding
    await leaving

    assert session.user is None
    assert session.workouts == []
    assert cache.read(SESSION_KEY) is None


@pytest.mark.asyncio
async def test_slot_added_after_logout_is_rejected(accounts, session, remote):
    await _register(accounts)
    await accounts.login("ana@example.com", "secret")
    release = await _hold_remote_writes(remote)

    first = asyncio.create_task(accounts.schedules.add_slot("Monday", "07:00 - 08:00", "A"))
    await asyncio.sleep(0)
    leaving = asyncio.create_task(accounts.logout())
    await asyncio.sleep(0)
    # starts while the first edit and the logout are both pending
    late = asyncio.create_task(accounts.schedules.add_slot("Tuesday", "07:00 - 08:00", "B"))
    await asyncio.sleep(0)

    release.set()
    await first
    await leaving
    with pytest.raises(SessionError):
        await late
    assert session.schedules == []
