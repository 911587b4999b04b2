"""Sign-up, sign-in and session lifecycle.

Account operations talk to the ``users`` collection directly and need a
connection; everything loaded after sign-in goes through the sync layer so
the app keeps working offline once a session exists.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
from typing import Any, Dict, Optional

from database.errors import AuthenticationError, ConnectivityError
from database.keys import SESSION_KEY, USERS_COLLECTION
from models.account import UserAccount
from services.notification_scheduler import NotificationScheduler
from services.notification_settings_service import NotificationSettingsService
from services.schedule_service import ScheduleService
from services.session_cache import SessionCache
from services.sync_coordinator import SyncCoordinator
from services.workout_service import WorkoutService

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 240_000
MIN_PASSWORD_LENGTH = 3


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return "pbkdf2_sha256${}${}${}".format(
        PBKDF2_ITERATIONS,
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    )


def verify_password(password: str, encoded: Optional[str]) -> bool:
    if not encoded:
        return False
    try:
        algorithm, iterations, salt_b64, digest_b64 = encoded.split("$")
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest, expected)


class AccountService:

    def __init__(
        self,
        session: SessionCache,
        coordinator: SyncCoordinator,
        scheduler: NotificationScheduler,
        schedules: ScheduleService,
        workouts: WorkoutService,
        notification_settings: NotificationSettingsService,
    ) -> None:
        self.session = session
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.schedules = schedules
        self.workouts = workouts
        self.notification_settings = notification_settings

    @property
    def remote(self):
        return self.coordinator.remote_store

    def _require_connection(self, action: str) -> None:
        if not self.coordinator.monitor.is_connected:
            raise ConnectivityError(f"{action} needs a network connection")

    async def _find_by_email(self, email: str) -> Optional[UserAccount]:
        matches = await self.remote.query(USERS_COLLECTION, "email", email)
        if not matches:
            return None
        doc_id, document = matches[0]
        return UserAccount.model_validate({**document, "id": doc_id})

    async def register(self, email: str, password: str, nickname: str,
                       height: float, weight: float) -> UserAccount:
        self._require_connection("Registration")
        email = email.strip().lower()
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        if await self._find_by_email(email) is not None:
            raise AuthenticationError("Email already exists")

        account = UserAccount(
            email=email,
            nickname=nickname,
            height=height,
            weight=weight,
            passwordHash=hash_password(password),
        )
        doc_id = await self.remote.add(USERS_COLLECTION, account.remote_document())
        account = account.model_copy(update={"id": doc_id})
        logger.info(f"Registered user {doc_id}")
        return account

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        self._require_connection("Login")
        account = await self._find_by_email(email.strip().lower())
        if account is None or not verify_password(password, account.passwordHash):
            raise AuthenticationError("Invalid email or password")

        if self.session.is_active:
            await self.logout()

        user = account.session_blob()
        self.coordinator.local_store.write(SESSION_KEY, user)
        await self._bootstrap(user)
        return user

    async def restore_session(self) -> Optional[Dict[str, Any]]:
        """App-launch path: resume the stored session, refreshing it when online."""
        record = self.coordinator.local_store.read(SESSION_KEY)
        if record is None or not isinstance(record.payload, dict) or not record.payload.get("id"):
            return None

        user = dict(record.payload)
        if self.coordinator.monitor.is_connected:
            try:
                document = await self.remote.get(USERS_COLLECTION, user["id"])
            except ConnectivityError as e:
                logger.warning(f"Could not refresh user profile, using stored session: {e}")
            else:
                if document is not None:
                    document.pop("passwordHash", None)
                    user = {**user, **document, "id": user["id"]}
                    self.coordinator.local_store.write(SESSION_KEY, user)

        await self._bootstrap(user)
        return user

    async def _bootstrap(self, user: Dict[str, Any]) -> None:
        user_id = user["id"]
        self.session.populate(user)
        self.session.set_schedules(await self.schedules.load(user_id))
        self.session.set_workouts(await self.workouts.load(user_id))
        await self.notification_settings.load(user_id)
        self.schedules.reschedule_all()

    async def logout(self) -> None:
        """Cancel reminders and clear the session once in-flight edits have finished."""
        async with self.schedules.edit_lock, self.workouts.edit_lock:
            self.scheduler.cancel_all()
            self.session.clear()
            self.coordinator.local_store.delete(SESSION_KEY)
        logger.info("Signed out")

    async def change_password(self, current_password: str, new_password: str) -> None:
        self._require_connection("Changing the password")
        user_id = self.session.require_user_id()
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters")

        document = await self.remote.get(USERS_COLLECTION, user_id)
        if document is None:
            raise AuthenticationError("User not found")
        if not verify_password(current_password, document.get("passwordHash")):
            raise AuthenticationError("Current password is incorrect")

        document["passwordHash"] = hash_password(new_password)
        await self.remote.set(USERS_COLLECTION, user_id, document)
        await self.logout()
