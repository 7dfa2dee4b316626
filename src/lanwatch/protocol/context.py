from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from lanwatch.config import Settings
from lanwatch.core import DeviceRegistry
from lanwatch.storage import AllowlistStore


@dataclass
class ServerStats:
    started_at: float = field(default_factory=time.monotonic)
    active_connections: int = 0
    total_connections: int = 0
    total_commands: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def connection_opened(self) -> None:
        with self._lock:
            self.active_connections += 1
            self.total_connections += 1

    def connection_closed(self) -> None:
        with self._lock:
            self.active_connections = max(0, self.active_connections - 1)

    def command_processed(self) -> None:
        with self._lock:
            self.total_commands += 1

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class ServerContext:
    """What command handlers are allowed to touch."""

    allowlist: AllowlistStore
    registry: DeviceRegistry
    settings: Settings = field(default_factory=Settings)
    stats: ServerStats = field(default_factory=ServerStats)


def format_uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
