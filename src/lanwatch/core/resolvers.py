"""Hostname resolution as an ordered chain of resolvers.

Consumer and IoT devices rarely answer reverse DNS, but most expose some
service. Each resolver returns a name or None; the first name wins and the
last resolver always produces a placeholder.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Awaitable, Callable, Sequence

from lanwatch.errors import DiscoveryError

from .network import port_open

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[str | None]]

PORT_SIGNATURES: tuple[tuple[tuple[int, ...], str], ...] = (
    ((80, 443), "WebDevice"),
    ((22,), "SSHDevice"),
    ((23,), "TelnetDevice"),
    ((21,), "FTPDevice"),
    ((3389,), "RDPDevice"),
    ((8080, 8443), "ProxyDevice"),
    ((53,), "DNSDevice"),
    ((67, 68), "DHCPDevice"),
    ((161, 162), "SNMPDevice"),
)
UNKNOWN_DEVICE = "UnknownDevice"


def _usable_name(name: str | None, ip: str) -> str | None:
    if not name:
        return None
    cleaned = name.rstrip(".")
    if not cleaned or cleaned == ip or cleaned.endswith(".in-addr.arpa"):
        return None
    return cleaned


async def canonical_name(ip: str) -> str | None:
    return _usable_name(await asyncio.to_thread(socket.getfqdn, ip), ip)


async def reverse_dns_name(ip: str) -> str | None:
    try:
        host, _ = await asyncio.to_thread(
            socket.getnameinfo, (ip, 0), socket.NI_NAMEREQD
        )
    except (socket.gaierror, socket.herror):
        return None
    return _usable_name(host, ip)


def port_signature(timeout: float) -> Resolver:
    """Name a device after the first well-known service it accepts."""
    ports = [port for group, _ in PORT_SIGNATURES for port in group]

    async def resolve(ip: str) -> str | None:
        results = await asyncio.gather(*(port_open(ip, port, timeout) for port in ports))
        open_ports = {port for port, is_open in zip(ports, results) if is_open}
        for group, label in PORT_SIGNATURES:
            if open_ports.intersection(group):
                return label
        return None

    return resolve


def placeholder_name(ip: str | None) -> str:
    try:
        last_octet = ipaddress.IPv4Address(ip or "").packed[-1]
    except ValueError:
        return UNKNOWN_DEVICE
    if last_octet == 1:
        return "Router"
    if last_octet == 2:
        return "Switch"
    if last_octet == 3:
        return "AccessPoint"
    if 100 <= last_octet <= 199:
        return f"Client-{last_octet}"
    if 200 <= last_octet <= 254:
        return f"Device-{last_octet}"
    return f"Node-{last_octet}"


async def placeholder(ip: str) -> str | None:
    return placeholder_name(ip)


class HostnameChain:
    def __init__(self, resolvers: Sequence[tuple[str, Resolver]]) -> None:
        self._resolvers = list(resolvers)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self._resolvers]

    async def resolve(self, ip: str) -> str:
        for name, resolver in self._resolvers:
            try:
                result = await resolver(ip)
            except (OSError, UnicodeError, asyncio.TimeoutError, DiscoveryError) as exc:
                logger.debug("Resolver %s failed for %s: %s", name, ip, exc)
                continue
            if result:
                logger.debug("Using %s name for %s: %s", name, ip, result)
                return result
        return placeholder_name(ip)


def default_chain(port_timeout: float) -> HostnameChain:
    return HostnameChain(
        [
            ("canonical", canonical_name),
            ("ports", port_signature(port_timeout)),
            ("reverse-dns", reverse_dns_name),
            ("placeholder", placeholder),
        ]
    )
