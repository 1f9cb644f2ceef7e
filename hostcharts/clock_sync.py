"""Server clock extrapolation and relative-time formatting."""
import time
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


class ClockSync:
    """Tracks the drift between the local clock and the feed's clock.

    ``update`` is called once per received snapshot with the server-reported
    ``now``; ``server_time`` extrapolates the server clock from the local one
    so "N seconds ago" style displays keep advancing between snapshots.
    """

    def __init__(self):
        self.offset_ms = 0
        self.synced = False

    def update(self, server_now: int, local_now: Optional[int] = None) -> int:
        if local_now is None:
            local_now = now_ms()
        self.offset_ms = int(local_now) - int(server_now)
        self.synced = True
        return self.offset_ms

    def server_time(self, local_now: Optional[int] = None) -> int:
        if local_now is None:
            local_now = now_ms()
        return int(local_now) - self.offset_ms


def format_time_ago(seconds: int) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def format_duration(seconds: int) -> str:
    """Compact duration such as ``2d3h`` or ``5min12s``; ``0s`` for zero."""
    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    result = ""
    if days > 0:
        result += f"{days}d"
    if hours > 0:
        result += f"{hours}h"
    if minutes > 0:
        result += f"{minutes}min"
    if secs > 0 or result == "":
        result += f"{secs}s"
    return result


def format_elapsed_label(timestamp_ms: int, now: int) -> str:
    # X-axis tick label
    elapsed = max(0, int(now) - int(timestamp_ms)) // 1000
    if elapsed < 60:
        return f"{elapsed}s"
    minutes = elapsed // 60
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"
