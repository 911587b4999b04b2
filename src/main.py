#!/usr/bin/env python3

from database.errors import AuthenticationError, ConnectivityError
from database.local_cache import LocalCache
from database.remote_store import RemoteStore
from network.connectivity import ConnectivityMonitor, ConnectivityProbe
from services.account_service import AccountService
from services.config import AppConfig, RedisConfig
from services.notification_scheduler import AsyncioNotificationBackend, NotificationScheduler
from services.notification_settings_service import NotificationSettingsService
from services.schedule_service import ScheduleService
from services.session_cache import SessionCache
from services.sync_coordinator import SyncCoordinator
from services.sync_queue import SyncQueue
from services.workout_service import WorkoutService
import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional


logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


class FitHubApp:

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        remote_store: Optional[RemoteStore] = None,
        use_remote: bool = True
    ):
        self.config = config or AppConfig.from_env()
        self.use_remote = use_remote
        self.remote_store = remote_store or RedisConfig.from_env().create_store()

        self.cache = LocalCache(self.config.cache_dir)
        self.monitor = ConnectivityMonitor()
        self.probe = ConnectivityProbe(
            self.monitor,
            host=self.config.probe_host,
            port=self.config.probe_port,
            interval=self.config.probe_interval
        )
        self.queue = SyncQueue(self.cache)
        self.coordinator = SyncCoordinator(self.cache, self.remote_store, self.queue, self.monitor)

        self.backend = AsyncioNotificationBackend(on_fire=self._on_reminder)
        self.scheduler = NotificationScheduler(self.backend)
        self.session = SessionCache()

        self.schedules = ScheduleService(self.session, self.coordinator, self.scheduler)
        self.workouts = WorkoutService(self.session, self.coordinator)
        self.notification_settings = NotificationSettingsService(
            self.session, self.coordinator, self.scheduler)
        self.accounts = AccountService(
            self.session,
            self.coordinator,
            self.scheduler,
            self.schedules,
            self.workouts,
            self.notification_settings
        )
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

    def _on_reminder(self, job_id: str, payload: Dict[str, Any]):
        self.scheduler.handle_fired(job_id)
        logger.info(f"{payload.get('title')}: {payload.get('body')}")

    async def start(self, email: Optional[str] = None, password: Optional[str] = None):
        if self.running:
            return

        print(f"Starting FitHub Sync - data in {self.config.data_dir}")
        self.running = True
        self._stop_event = asyncio.Event()
        self.coordinator.start()

        if self.use_remote:
            # the first probe result decides whether launch reads go remote
            await self.probe.check_once()
            self.probe.start()
        else:
            logger.warning("Remote store disabled, running local-only")

        try:
            if email and password:
                user = await self.accounts.login(email, password)
            else:
                user = await self.accounts.restore_session()
        except (AuthenticationError, ConnectivityError) as e:
            logger.error(f"Sign-in failed: {e}")
            user = None

        if user:
            logger.info(f"Signed in as {user.get('nickname') or user.get('email')}")
        else:
            logger.info("No active session")

        if len(self.queue):
            logger.info(f"{len(self.queue)} change(s) waiting to sync")

        self.schedules.start_sweep(self.config.sweep_interval)
        print("FitHub Sync running. Press Ctrl+C to stop")

    async def stop(self):
        if not self.running:
            return

        self.running = False
        await self.schedules.stop_sweep()
        await self.probe.stop()
        await self.coordinator.stop()
        self.scheduler.cancel_all()

        try:
            self.remote_store.close()
        except Exception as e:
            logger.warning(f"Could not close remote store: {e}")

        if self._stop_event:
            self._stop_event.set()
        print("FitHub Sync stopped")

    def request_stop(self):
        if self._stop_event:
            self._stop_event.set()

    async def run_forever(self, email: Optional[str] = None, password: Optional[str] = None):
        await self.start(email, password)
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            await self._stop_event.wait()
        finally:
            await self.stop()


def parse_args():
    parser = argparse.ArgumentParser(
        description="FitHub Sync - offline-first workout schedule and record sync"
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for the local cache (default: ~/.fithub)"
    )

    parser.add_argument(
        "--sweep-interval",
        type=float,
        default=None,
        help="Seconds between expired-workout sweeps (default: 300)"
    )

    parser.add_argument(
        "--probe-host",
        type=str,
        default=None,
        help="Host used to check connectivity (default: 8.8.8.8)"
    )

    parser.add_argument(
        "--probe-port",
        type=int,
        default=None,
        help="Port used to check connectivity (default: 53)"
    )

    parser.add_argument(
        "--login",
        type=str,
        default=None,
        metavar="EMAIL",
        help="Sign in with this email; the password is read from FITHUB_PASSWORD"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--no-remote",
        action="store_true",
        help="Never contact the remote store; all changes stay queued"
    )

    return parser.parse_args()


def build_config(args) -> AppConfig:
    config = AppConfig.from_env()
    overrides = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir.expanduser()
    if args.sweep_interval is not None:
        overrides["sweep_interval"] = args.sweep_interval
    if args.probe_host is not None:
        overrides["probe_host"] = args.probe_host
    if args.probe_port is not None:
        overrides["probe_port"] = args.probe_port
    if not overrides:
        return config
    return AppConfig(**{**config.__dict__, **overrides})


def main():
    args = parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    password = os.getenv("FITHUB_PASSWORD")
    if args.login and not password:
        logger.error("FITHUB_PASSWORD must be set when using --login")
        sys.exit(2)

    app = FitHubApp(config=build_config(args), use_remote=not args.no_remote)

    try:
        asyncio.run(app.run_forever(args.login, password))
    except KeyboardInterrupt:
        print("\nStopping...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
