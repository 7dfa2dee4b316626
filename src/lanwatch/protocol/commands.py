from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from lanwatch.errors import ConflictError, NotFoundError, ProtocolError
from lanwatch.models import AllowlistEntry, DeviceRecord, normalize_mac

from .context import ServerContext, format_uptime
from .response import Response

MAX_TOKENS = 4

Handler = Callable[[ServerContext, tuple[str, ...]], Response]


@dataclass(frozen=True)
class CommandSpec:
    name: str
    min_args: int
    max_args: int
    usage: str
    description: str
    handler: Handler
    closes_connection: bool = False

    def check_arity(self, count: int) -> None:
        if count < self.min_args:
            raise ProtocolError(
                f"{self.name} requires at least {self.min_args} argument(s). Usage: {self.usage}"
            )
        if count > self.max_args:
            if self.max_args == 0:
                raise ProtocolError(f"{self.name} takes no arguments. Usage: {self.usage}")
            raise ProtocolError(
                f"{self.name} takes at most {self.max_args} argument(s). Usage: {self.usage}"
            )


@dataclass(frozen=True)
class Request:
    command: CommandSpec
    args: tuple[str, ...]


def _list_devices(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    devices = ctx.registry.all()
    if not devices:
        return Response.success("No devices discovered on the network", devices=[])
    return Response.success(f"Found {len(devices)} device(s) on the network", devices=devices)


def _list_allowlist(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    records: list[DeviceRecord] = []
    for entry in ctx.allowlist.entries():
        seen = ctx.registry.get(entry.mac)
        records.append(entry.as_device(seen.last_seen if seen else None))
    if not records:
        return Response.success("Allowlist is empty", devices=[])
    return Response.success(f"Allowlist contains {len(records)} device(s)", devices=records)


def _add(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    hostname = args[1] if len(args) > 1 else None
    ip = args[2] if len(args) > 2 else None
    entry = AllowlistEntry.create(args[0], hostname, ip)
    if not ctx.allowlist.add(entry):
        raise ConflictError(f"Device {entry.mac} is already in the allowlist")
    ctx.registry.reclassify()
    return Response.success(f"Device added to allowlist: {entry.compact()}")


def _delete(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    mac = normalize_mac(args[0])
    if not ctx.allowlist.remove(mac):
        raise NotFoundError(f"Device {mac} is not in the allowlist")
    ctx.registry.reclassify()
    return Response.success(f"Device removed from allowlist: {mac}")


def _status(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    known, unknown = ctx.registry.counts()
    stats = ctx.stats
    data = ";".join(
        [
            f"devices={known + unknown}",
            f"known={known}",
            f"unknown={unknown}",
            f"allowlist={ctx.allowlist.count}",
            f"connections={stats.active_connections}",
            f"commands={stats.total_commands}",
            f"uptime={int(stats.uptime)}",
        ]
    )
    return Response.success(f"Server running, uptime {format_uptime(stats.uptime)}", data=data)


def _quit(ctx: ServerContext, args: tuple[str, ...]) -> Response:
    return Response.success("Goodbye")


COMMANDS: dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("LIST", 0, 0, "LIST", "List devices seen on the network", _list_devices),
        CommandSpec(
            "ALLOWLIST", 0, 0, "ALLOWLIST", "List authorized devices", _list_allowlist
        ),
        CommandSpec(
            "ADD", 1, 3, "ADD <MAC> [HOSTNAME] [IP]", "Authorize a device", _add
        ),
        CommandSpec("DEL", 1, 1, "DEL <MAC>", "Revoke a device", _delete),
        CommandSpec("STATUS", 0, 0, "STATUS", "Show server health", _status),
        CommandSpec(
            "QUIT", 0, 0, "QUIT", "Close the connection", _quit, closes_connection=True
        ),
    )
}


def tokenize(line: str) -> list[str]:
    return line.split(maxsplit=MAX_TOKENS - 1)


def parse_request(line: str) -> Request | None:
    """Resolve a request line to a command; None for a blank line."""
    tokens = tokenize(line)
    if not tokens:
        return None
    spec = COMMANDS.get(tokens[0].upper())
    if spec is None:
        raise ProtocolError(
            f"Unknown command '{tokens[0]}'. Valid commands: {', '.join(COMMANDS)}",
            unknown_command=True,
        )
    args = tuple(tokens[1:])
    spec.check_arity(len(args))
    return Request(command=spec, args=args)
