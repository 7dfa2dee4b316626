"""In-memory cache of devices observed on the network."""

from __future__ import annotations

import ipaddress
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from lanwatch.errors import PersistenceError, ValidationError
from lanwatch.models import AllowlistEntry, DeviceRecord, Observation, utcnow
from lanwatch.models.validation import normalize_mac
from lanwatch.storage import AllowlistStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    record: DeviceRecord
    created: bool
    auto_added: bool = False


def _sort_key(record: DeviceRecord) -> tuple[int, int, str]:
    if record.ip is None:
        return (1, 0, record.mac)
    return (0, int(ipaddress.IPv4Address(record.ip)), record.mac)


class DeviceRegistry:
    """Devices keyed by MAC, each classified against the allowlist.

    A single lock guards the map. Allowlist writes (auto-add) happen outside
    of it, so a slow disk never stalls readers of the registry.
    """

    def __init__(
        self,
        allowlist: AllowlistStore,
        *,
        ban_window: timedelta = timedelta(minutes=10),
        auto_add: bool = False,
    ) -> None:
        self._allowlist = allowlist
        self._ban_window = ban_window
        self._auto_add = auto_add
        self._devices: dict[str, DeviceRecord] = {}
        self._lock = threading.Lock()

    @property
    def ban_window(self) -> timedelta:
        return self._ban_window

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def upsert(self, observation: Observation) -> UpsertResult:
        mac = observation.mac
        seen_at = observation.seen_at
        with self._lock:
            existing = self._devices.get(mac)
            if existing is not None:
                record = existing.model_copy(
                    update={
                        "ip": observation.ip or existing.ip,
                        "hostname": observation.hostname,
                        "last_seen": max(seen_at, existing.last_seen or seen_at),
                        "known": self._allowlist.contains(mac),
                    }
                )
                self._devices[mac] = record
                logger.debug("Updated device %s", record.compact())
                return UpsertResult(record=record, created=False)

            record = DeviceRecord(
                mac=mac,
                ip=observation.ip,
                hostname=observation.hostname,
                last_seen=seen_at,
                known=self._allowlist.contains(mac),
            )
            self._devices[mac] = record

        auto_added = False
        if self._auto_add and not record.known:
            auto_added = self._auto_register(record)
            if auto_added:
                record = self._refresh_known(mac) or record

        logger.info(
            "New device %s (%s)",
            record.compact(),
            "auto-added" if auto_added else ("known" if record.known else "unknown"),
        )
        return UpsertResult(record=record, created=True, auto_added=auto_added)

    def reclassify(self) -> tuple[int, int]:
        """Recompute ``known`` for every record; returns (known, unknown)."""
        with self._lock:
            for mac, record in self._devices.items():
                self._devices[mac] = record.classified(self._allowlist.contains(mac))
            known = sum(1 for record in self._devices.values() if record.known)
            unknown = len(self._devices) - known
        logger.debug("Device status updated: %d known, %d unknown", known, unknown)
        return known, unknown

    def evict(self, cutoff: datetime) -> int:
        """Drop records last seen before ``cutoff``; returns how many went."""
        with self._lock:
            stale = [
                mac
                for mac, record in self._devices.items()
                if record.last_seen is not None and record.last_seen < cutoff
            ]
            for mac in stale:
                del self._devices[mac]
        if stale:
            logger.info("Evicted %d stale devices", len(stale))
        return len(stale)

    def evict_stale(self, now: datetime | None = None) -> int:
        if not self._ban_window:
            return 0
        return self.evict((now or utcnow()) - self._ban_window)

    def all(self) -> list[DeviceRecord]:
        with self._lock:
            records = list(self._devices.values())
        return sorted(records, key=_sort_key)

    def get(self, mac: str) -> DeviceRecord | None:
        try:
            key = normalize_mac(mac)
        except ValidationError:
            return None
        with self._lock:
            return self._devices.get(key)

    def counts(self) -> tuple[int, int]:
        with self._lock:
            known = sum(1 for record in self._devices.values() if record.known)
            return known, len(self._devices) - known

    def is_active(self, mac: str, window: timedelta, now: datetime | None = None) -> bool:
        record = self.get(mac)
        if record is None or record.last_seen is None:
            return False
        return record.last_seen > (now or utcnow()) - window

    def _auto_register(self, record: DeviceRecord) -> bool:
        entry = AllowlistEntry.create(record.mac, record.hostname.replace(",", " "), record.ip)
        try:
            return self._allowlist.add(entry)
        except PersistenceError as exc:
            logger.warning("Auto-add of %s failed: %s", record.mac, exc)
            return False

    def _refresh_known(self, mac: str) -> DeviceRecord | None:
        with self._lock:
            record = self._devices.get(mac)
            if record is None:
                return None
            record = record.classified(self._allowlist.contains(mac))
            self._devices[mac] = record
            return record
