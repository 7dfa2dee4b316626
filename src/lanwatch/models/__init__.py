"""Data models for lanwatch."""

from lanwatch.models.device import (
    UNKNOWN_HOSTNAME,
    AllowlistEntry,
    DeviceRecord,
    Observation,
    utcnow,
)
from lanwatch.models.validation import is_valid_mac, normalize_ip, normalize_mac

__all__ = [
    "UNKNOWN_HOSTNAME",
    "AllowlistEntry",
    "DeviceRecord",
    "Observation",
    "is_valid_mac",
    "normalize_ip",
    "normalize_mac",
    "utcnow",
]
