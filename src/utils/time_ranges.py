import re
from datetime import time
from typing import Tuple

_HH_MM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hh_mm(value: str) -> time:
    match = _HH_MM.match(value.strip())
    if not match:
        raise ValueError(f"Expected 24h HH:mm time, got {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def parse_time_range(value: str) -> Tuple[time, time]:
    """Parse ``"HH:mm - HH:mm"`` into ``(start, end)``."""
    parts = value.split("-")
    if len(parts) != 2:
        raise ValueError(f"Expected 'HH:mm - HH:mm', got {value!r}")
    return parse_hh_mm(parts[0]), parse_hh_mm(parts[1])


def format_time_range(start: time, end: time) -> str:
    return f"{start:%H:%M} - {end:%H:%M}"
