"""Line oriented response framing.

A response is written as::

    STATUS:<status>
    MESSAGE:<text>          (when non-empty)
    DATA:<text>             (when non-empty)
    DEVICES:<n>             (when the response carries a device list)
    MAC:..|IP:..|HOSTNAME:..|KNOWN:true|LAST_SEEN:<iso or never>   (n lines)
    END

Free text fields escape ``\\``, ``|``, ``:`` and line breaks so a device
line always splits into exactly five fields.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from lanwatch.errors import ProtocolError
from lanwatch.models import DeviceRecord

FOOTER = "END"
NEVER_SEEN = "never"
FIELD_SEPARATOR = "|"

_ESCAPES = {"\\": "\\\\", "|": "\\|", ":": "\\:", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"n": "\n", "r": "\r"}


class ResponseStatus(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    INVALID_COMMAND = "INVALID_COMMAND"
    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
    DEVICE_ALREADY_EXISTS = "DEVICE_ALREADY_EXISTS"


class Response(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    status: ResponseStatus
    message: str = ""
    data: str = ""
    devices: list[DeviceRecord] | None = None

    @classmethod
    def success(
        cls,
        message: str,
        *,
        devices: list[DeviceRecord] | None = None,
        data: str = "",
    ) -> Response:
        return cls(status=ResponseStatus.SUCCESS, message=message, devices=devices, data=data)

    @classmethod
    def error(cls, message: str) -> Response:
        return cls(status=ResponseStatus.ERROR, message=message)

    @classmethod
    def invalid_command(cls, message: str) -> Response:
        return cls(status=ResponseStatus.INVALID_COMMAND, message=message)

    @classmethod
    def device_not_found(cls, message: str) -> Response:
        return cls(status=ResponseStatus.DEVICE_NOT_FOUND, message=message)

    @classmethod
    def device_already_exists(cls, message: str) -> Response:
        return cls(status=ResponseStatus.DEVICE_ALREADY_EXISTS, message=message)

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.SUCCESS

    def encode(self) -> str:
        return encode_response(self)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)


def escape_field(text: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in text)


def unescape_field(text: str) -> str:
    chars: list[str] = []
    iterator = iter(text)
    for char in iterator:
        if char != "\\":
            chars.append(char)
            continue
        following = next(iterator, "\\")
        chars.append(_UNESCAPES.get(following, following))
    return "".join(chars)


def split_escaped(text: str, separator: str = FIELD_SEPARATOR) -> list[str]:
    """Split on unescaped ``separator``; escapes are kept for unescape_field."""
    parts: list[str] = []
    current: list[str] = []
    iterator = iter(text)
    for char in iterator:
        if char == "\\":
            current.append(char)
            current.append(next(iterator, ""))
        elif char == separator:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def format_device(record: DeviceRecord) -> str:
    last_seen = (
        record.last_seen.isoformat(timespec="seconds") if record.last_seen else NEVER_SEEN
    )
    fields = [
        f"MAC:{record.mac}",
        f"IP:{record.ip or ''}",
        f"HOSTNAME:{escape_field(record.hostname)}",
        f"KNOWN:{'true' if record.known else 'false'}",
        f"LAST_SEEN:{last_seen}",
    ]
    return FIELD_SEPARATOR.join(fields)


def parse_device(line: str) -> DeviceRecord:
    values: dict[str, str] = {}
    for part in split_escaped(line):
        key, sep, value = part.partition(":")
        if not sep:
            raise ProtocolError(f"Malformed device field: {part!r}")
        values[key] = value
    try:
        last_seen_text = values["LAST_SEEN"]
        return DeviceRecord(
            mac=values["MAC"],
            ip=values["IP"] or None,
            hostname=unescape_field(values["HOSTNAME"]),
            known=values["KNOWN"] == "true",
            last_seen=(
                None if last_seen_text == NEVER_SEEN else datetime.fromisoformat(last_seen_text)
            ),
        )
    except (KeyError, ValueError) as exc:
        raise ProtocolError(f"Malformed device line: {line!r}") from exc


def encode_lines(response: Response) -> Iterator[str]:
    yield f"STATUS:{response.status.value}"
    if response.message:
        yield f"MESSAGE:{escape_field(response.message)}"
    if response.data:
        yield f"DATA:{escape_field(response.data)}"
    if response.devices is not None:
        yield f"DEVICES:{len(response.devices)}"
        for record in response.devices:
            yield format_device(record)
    yield FOOTER


def encode_response(response: Response) -> str:
    return "\n".join(encode_lines(response)) + "\n"


def decode_response(lines: Iterable[str]) -> Response:
    """Parse the lines of one framed response, footer included."""
    iterator = (line.rstrip("\r\n") for line in lines)
    fields: dict[str, str] = {}
    devices: list[DeviceRecord] | None = None
    try:
        for line in iterator:
            if line == FOOTER:
                break
            key, sep, value = line.partition(":")
            if not sep:
                raise ProtocolError(f"Malformed response line: {line!r}")
            if key == "DEVICES":
                devices = [parse_device(next(iterator)) for _ in range(int(value))]
            else:
                fields[key] = value
        else:
            raise ProtocolError("Truncated response")
    except StopIteration as exc:
        raise ProtocolError("Truncated response") from exc
    except ValueError as exc:
        raise ProtocolError(f"Malformed response: {exc}") from exc

    if "STATUS" not in fields:
        raise ProtocolError("Response has no STATUS line")
    try:
        status = ResponseStatus(fields["STATUS"])
    except ValueError as exc:
        raise ProtocolError(f"Unknown status {fields['STATUS']!r}") from exc
    return Response(
        status=status,
        message=unescape_field(fields.get("MESSAGE", "")),
        data=unescape_field(fields.get("DATA", "")),
        devices=devices,
    )
