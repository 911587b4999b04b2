from datetime import datetime
from typing import Protocol


class Clock(Protocol):

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in device-local naive time, matching how slots are entered."""

    def now(self) -> datetime:
        return datetime.now()
