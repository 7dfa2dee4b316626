from __future__ import annotations

from dataclasses import dataclass, field

from lanwatch.models import DeviceRecord


@dataclass
class Redactor:
    """Masks addresses and names so scan output can be shared.

    MACs keep their vendor prefix and get a stable per-run counter, so two
    rows that refer to the same device still match after redaction.
    """

    enabled: bool = True
    _mac_map: dict[str, int] = field(default_factory=dict)
    _host_map: dict[str, int] = field(default_factory=dict)

    def redact_ip(self, ip: str | None) -> str:
        if ip is None:
            return ""
        if not self.enabled:
            return ip
        parts = ip.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}"
        return ip

    def redact_mac(self, mac: str) -> str:
        if not self.enabled:
            return mac
        parts = mac.split(":")
        if len(parts) != 6:
            return mac
        counter = self._mac_map.setdefault(mac, len(self._mac_map) + 1)
        return f"{':'.join(parts[:3])}:xx:xx:{counter:02d}"

    def redact_hostname(self, hostname: str) -> str:
        if not self.enabled or "." not in hostname:
            return hostname
        counter = self._host_map.setdefault(hostname, len(self._host_map) + 1)
        return f"host-{counter:02d}.{hostname.rsplit('.', 1)[-1]}"

    def device(self, record: DeviceRecord) -> DeviceRecord:
        if not self.enabled:
            return record
        return record.model_copy(
            update={
                "mac": self.redact_mac(record.mac),
                "ip": self.redact_ip(record.ip) or None,
                "hostname": self.redact_hostname(record.hostname),
            }
        )
