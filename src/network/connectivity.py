import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityStatus:
    connected: bool


StatusCallback = Callable[[ConnectivityStatus], None]


class ConnectivityMonitor:
    """Tracks reachability and notifies listeners on every transition.

    Starts disconnected: a device that never reports a network is treated as
    permanently offline.
    """

    def __init__(self, connected: bool = False):
        self._connected = connected
        self._listeners: List[StatusCallback] = []
        self._lock = threading.Lock()

    def current_status(self) -> ConnectivityStatus:
        return ConnectivityStatus(connected=self._connected)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def report(self, connected: bool) -> bool:
        """Record the latest reachability. Returns True if it was a transition."""
        with self._lock:
            if connected == self._connected:
                return False
            self._connected = connected
            listeners = list(self._listeners)

        status = ConnectivityStatus(connected=connected)
        if connected:
            logger.info("Network connection restored")
        else:
            logger.warning("Network connection lost")

        for listener in listeners:
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Connectivity listener error: {e}")
        return True


class ConnectivityProbe:
    """Feeds a ConnectivityMonitor by periodically opening a TCP connection."""

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        host: str = "8.8.8.8",
        port: int = 53,
        interval: float = 10.0,
        timeout: float = 3.0
    ):
        self.monitor = monitor
        self.host = host
        self.port = port
        self.interval = interval
        self.timeout = timeout
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def check_once(self) -> bool:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError):
            reachable = False
        else:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            reachable = True

        self.monitor.report(reachable)
        return reachable

    async def _run(self):
        while self._running:
            await self.check_once()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._running = True
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
