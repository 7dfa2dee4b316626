from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from lanwatch.errors import ValidationError

from .validation import normalize_ip, normalize_mac

UNKNOWN_HOSTNAME = "Unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_hostname(value: str | None) -> str:
    cleaned = (value or "").strip()
    return cleaned or UNKNOWN_HOSTNAME


class DeviceRecord(BaseModel):
    """A device currently or recently visible on the network."""

    model_config = {"frozen": True, "extra": "forbid"}

    mac: str
    ip: str | None = None
    hostname: str = UNKNOWN_HOSTNAME
    last_seen: datetime | None = None
    known: bool = False

    @field_validator("mac")
    @classmethod
    def _mac(cls, value: str) -> str:
        return normalize_mac(value)

    @field_validator("ip")
    @classmethod
    def _ip(cls, value: str | None) -> str | None:
        return normalize_ip(value)

    @field_validator("hostname", mode="before")
    @classmethod
    def _hostname(cls, value: str | None) -> str:
        return _clean_hostname(value)

    def touched(self, now: datetime | None = None) -> DeviceRecord:
        return self.model_copy(update={"last_seen": now or utcnow()})

    def classified(self, known: bool) -> DeviceRecord:
        if known == self.known:
            return self
        return self.model_copy(update={"known": known})

    def compact(self) -> str:
        return f"{self.hostname}({self.mac})@{self.ip or '-'}"


class AllowlistEntry(BaseModel):
    """An authorized device, persisted in the allowlist file."""

    model_config = {"frozen": True, "extra": "forbid"}

    mac: str
    hostname: str = UNKNOWN_HOSTNAME
    ip: str | None = None

    @field_validator("mac")
    @classmethod
    def _mac(cls, value: str) -> str:
        return normalize_mac(value)

    @field_validator("ip")
    @classmethod
    def _ip(cls, value: str | None) -> str | None:
        return normalize_ip(value)

    @field_validator("hostname", mode="before")
    @classmethod
    def _hostname(cls, value: str | None) -> str:
        return _clean_hostname(value)

    @classmethod
    def create(
        cls, mac: str, hostname: str | None = None, ip: str | None = None
    ) -> AllowlistEntry:
        """Build an entry, raising lanwatch's ValidationError on bad fields.

        Field checks run before pydantic so callers see the field-level error
        instead of a pydantic wrapper.
        """
        mac = normalize_mac(mac)
        name = _clean_hostname(hostname)
        if "," in name:
            raise ValidationError("hostname", name, "must not contain ','")
        return cls(mac=mac, hostname=name, ip=normalize_ip(ip))

    def as_device(self, last_seen: datetime | None = None) -> DeviceRecord:
        return DeviceRecord(
            mac=self.mac,
            ip=self.ip,
            hostname=self.hostname,
            last_seen=last_seen,
            known=True,
        )

    def compact(self) -> str:
        return f"{self.hostname}({self.mac})@{self.ip or '-'}"


class Observation(BaseModel):
    """One sighting of a device produced by a discovery cycle."""

    model_config = {"frozen": True, "extra": "forbid"}

    mac: str
    ip: str | None = None
    hostname: str = UNKNOWN_HOSTNAME
    seen_at: datetime = Field(default_factory=utcnow)

    @field_validator("mac")
    @classmethod
    def _mac(cls, value: str) -> str:
        return normalize_mac(value)

    @field_validator("ip")
    @classmethod
    def _ip(cls, value: str | None) -> str | None:
        return normalize_ip(value)

    @field_validator("hostname", mode="before")
    @classmethod
    def _hostname(cls, value: str | None) -> str:
        return _clean_hostname(value)
