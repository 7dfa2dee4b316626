from __future__ import annotations

import asyncio
import contextlib
import ipaddress
import itertools
import logging
import math
import platform
import re
import socket
from collections.abc import Iterable, Sequence

import psutil

from lanwatch.config import MonitorConfig
from lanwatch.errors import DiscoveryError, ValidationError
from lanwatch.models.validation import normalize_mac

logger = logging.getLogger(__name__)

NEIGHBOR_LINE = re.compile(
    r"(\d{1,3}(?:\.\d{1,3}){3}).*?((?:[0-9a-fA-F]{2}[:-]){5}[0-9a-fA-F]{2})"
)
NEIGHBOR_COMMANDS: tuple[tuple[str, ...], ...] = (("ip", "neigh", "show"), ("arp", "-a"))
IGNORED_MACS = frozenset({"FF:FF:FF:FF:FF:FF", "00:00:00:00:00:00"})


def detect_local_network() -> ipaddress.IPv4Network:
    for interface_addrs in psutil.net_if_addrs().values():
        for addr in interface_addrs:
            if getattr(addr, "family", None) != socket.AF_INET:
                continue
            if not addr.address or not addr.netmask:
                continue
            ip = ipaddress.ip_address(addr.address)
            if ip.is_loopback or ip.is_link_local:
                continue
            try:
                network = ipaddress.IPv4Network(
                    f"{addr.address}/{addr.netmask}", strict=False
                )
            except ValueError:
                continue
            logger.debug("Detected local network %s on %s", network, addr.address)
            return network

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            local_ip = sock.getsockname()[0]
    except OSError as exc:
        raise RuntimeError("Could not detect local network") from exc
    network = ipaddress.IPv4Network(f"{local_ip}/24", strict=False)
    logger.debug("Detected local network %s via default route", network)
    return network


def network_hosts(network: ipaddress.IPv4Network, limit: int) -> list[str]:
    return [str(host) for host in itertools.islice(network.hosts(), limit)]


def build_targets(
    primary: Iterable[ipaddress.IPv4Network],
    primary_limit: int,
    extra: Iterable[str],
    extra_limit: int,
) -> list[str]:
    """Candidate addresses: primary networks first, then the extra ranges.

    Duplicates are dropped while keeping first-seen order.
    """
    targets: dict[str, None] = {}
    for network in primary:
        targets.update(dict.fromkeys(network_hosts(network, primary_limit)))
    for value in extra:
        try:
            network = ipaddress.IPv4Network(value, strict=False)
        except ValueError:
            logger.warning("Ignoring invalid extra network %r", value)
            continue
        targets.update(dict.fromkeys(network_hosts(network, extra_limit)))
    return list(targets)


def targets_from_config(config: MonitorConfig) -> list[str]:
    primary: list[ipaddress.IPv4Network] = []
    if config.networks:
        for value in config.networks:
            try:
                primary.append(ipaddress.IPv4Network(value, strict=False))
            except ValueError:
                logger.warning("Ignoring invalid network %r", value)
    else:
        try:
            primary.append(detect_local_network())
        except RuntimeError as exc:
            logger.warning("%s; scanning extra networks only", exc)
    return build_targets(
        primary, config.scan_range, config.extra_networks, config.extra_host_limit
    )


def ping_command(ip: str, timeout: float) -> list[str]:
    system = platform.system().lower()
    if "windows" in system:
        return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), ip]
    if system == "darwin":
        return ["ping", "-c", "1", "-W", str(int(timeout * 1000)), ip]
    return ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout))), ip]


async def ping(ip: str, timeout: float) -> bool:
    try:
        process = await asyncio.create_subprocess_exec(
            *ping_command(ip, timeout),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        raise DiscoveryError(ip, "reachability probe", str(exc)) from exc

    try:
        return await asyncio.wait_for(process.wait(), timeout + 1.0) == 0
    except (asyncio.TimeoutError, TimeoutError):
        return False
    finally:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()


def parse_neighbor_table(lines: Iterable[str]) -> dict[str, str]:
    """Map IPv4 address to MAC from ``ip neigh`` or ``arp -a`` output."""
    table: dict[str, str] = {}
    for line in lines:
        lowered = line.lower()
        if "incomplete" in lowered or "failed" in lowered:
            continue
        match = NEIGHBOR_LINE.search(line)
        if not match:
            continue
        try:
            address = ipaddress.IPv4Address(match.group(1))
        except ValueError:
            continue
        if address.is_multicast or address == ipaddress.IPv4Address("255.255.255.255"):
            continue
        mac = normalize_mac(match.group(2))
        if mac in IGNORED_MACS:
            continue
        table.setdefault(str(address), mac)
    return table


def local_interface_macs() -> dict[str, str]:
    """Map this host's own IPv4 addresses to the MAC of their interface.

    The scanning machine answers its own ping but never shows up in its own
    neighbor table, so its MAC has to come from the interface list.
    """
    table: dict[str, str] = {}
    for interface_addrs in psutil.net_if_addrs().values():
        mac: str | None = None
        addresses: list[str] = []
        for addr in interface_addrs:
            if addr.family == psutil.AF_LINK:
                try:
                    mac = normalize_mac(addr.address)
                except ValidationError:
                    continue
            elif addr.family == socket.AF_INET and addr.address:
                addresses.append(addr.address)
        if mac is None or mac in IGNORED_MACS:
            continue
        for address in addresses:
            table.setdefault(address, mac)
    return table


async def read_neighbor_table(
    commands: Sequence[Sequence[str]] = NEIGHBOR_COMMANDS,
) -> dict[str, str]:
    for command in commands:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            stdout, _ = await process.communicate()
        except OSError as exc:
            logger.debug("Neighbor table command %s unavailable: %s", command[0], exc)
            continue
        table = parse_neighbor_table(stdout.decode(errors="replace").splitlines())
        if table:
            return table
    return {}


async def port_open(ip: str, port: int, timeout: float) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(ip, port), timeout)
    except (asyncio.TimeoutError, TimeoutError, OSError):
        return False
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()
    return True
