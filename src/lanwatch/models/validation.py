from __future__ import annotations

import ipaddress
import re

from lanwatch.errors import ValidationError

MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}$")
IPV4_PATTERN = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
MAC_FORMAT_HINT = "expected format XX:XX:XX:XX:XX:XX"


def is_valid_mac(value: str | None) -> bool:
    return bool(value) and MAC_PATTERN.match(value.strip()) is not None


def normalize_mac(value: str) -> str:
    """Return the uppercase, colon separated form of a MAC address.

    Accepts colon or hyphen separators in any case. Raises ValidationError for
    anything else, so the result of a successful call is itself valid input.
    """
    cleaned = (value or "").strip()
    if not MAC_PATTERN.match(cleaned):
        raise ValidationError("MAC", value, MAC_FORMAT_HINT)
    return cleaned.replace("-", ":").upper()


def normalize_ip(value: str | None) -> str | None:
    """Validate an optional dotted-quad IPv4 address; blank means absent."""
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if not IPV4_PATTERN.match(cleaned):
        raise ValidationError("IP", value, "expected dotted-quad IPv4")
    try:
        return str(ipaddress.IPv4Address(cleaned))
    except ipaddress.AddressValueError as exc:
        raise ValidationError("IP", value, str(exc)) from exc
