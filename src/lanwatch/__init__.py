"""lanwatch - watch a LAN for devices and keep an allowlist of the ones you trust."""

from __future__ import annotations

from importlib.metadata import version

from .config import MonitorConfig, ServerConfig, Settings, StorageConfig, get_settings
from .models import AllowlistEntry, DeviceRecord, Observation
from .storage import AllowlistStore

__all__ = [
    "AllowlistEntry",
    "AllowlistStore",
    "DeviceRecord",
    "MonitorConfig",
    "Observation",
    "ServerConfig",
    "Settings",
    "StorageConfig",
    "__version__",
    "get_settings",
]

__version__ = version("lanwatch")
