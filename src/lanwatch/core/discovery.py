from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import TypeVar

from lanwatch.config import MonitorConfig
from lanwatch.errors import DiscoveryError
from lanwatch.models import Observation, utcnow

from .network import (
    local_interface_macs,
    ping,
    read_neighbor_table,
    targets_from_config,
)
from .resolvers import HostnameChain, default_chain

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[bool]]
NeighborReader = Callable[[], Awaitable[dict[str, str]]]
InterfaceReader = Callable[[], dict[str, str]]
TargetSource = Callable[[], Sequence[str]]

T = TypeVar("T")


class DiscoveryPipeline:
    """Turns candidate addresses into observations.

    Each cycle probes every candidate for reachability, reads the neighbor
    table once, falls back to the local interfaces for this host's own
    addresses, drops reachable hosts without a MAC and names the rest
    through the hostname chain. Probing and naming run on a fixed number of
    workers.
    """

    def __init__(
        self,
        targets: TargetSource,
        *,
        probe: Probe,
        neighbors: NeighborReader = read_neighbor_table,
        interfaces: InterfaceReader = local_interface_macs,
        hostnames: HostnameChain | None = None,
        workers: int = 64,
    ) -> None:
        self._targets = targets
        self._probe = probe
        self._neighbors = neighbors
        self._interfaces = interfaces
        self._hostnames = hostnames or default_chain(0.3)
        self._workers = max(1, workers)

    @classmethod
    def from_config(cls, config: MonitorConfig) -> DiscoveryPipeline:
        return cls(
            partial(targets_from_config, config),
            probe=partial(_ping_probe, timeout=config.ping_timeout),
            hostnames=default_chain(config.port_timeout),
            workers=config.parallel_probes,
        )

    async def scan(self) -> list[Observation]:
        candidates = list(self._targets())
        logger.debug("Probing %d candidate addresses", len(candidates))
        reachable = await self._bounded(candidates, self._is_reachable)
        alive = [ip for ip in candidates if reachable[ip]]

        try:
            table = await self._neighbors()
        except OSError as exc:
            logger.warning("Neighbor table unavailable: %s", exc)
            table = {}
        try:
            local = self._interfaces()
        except OSError as exc:
            logger.warning("Interface addresses unavailable: %s", exc)
            local = {}

        identified: dict[str, str] = {}
        seen_macs: set[str] = set()
        for ip in alive:
            mac = table.get(ip) or local.get(ip)
            if mac is None:
                logger.debug("No neighbor entry for %s, skipping", ip)
                continue
            if mac in seen_macs:
                continue
            seen_macs.add(mac)
            identified[ip] = mac

        names = await self._bounded(list(identified), self._hostnames.resolve)
        seen_at = utcnow()
        observations = [
            Observation(mac=mac, ip=ip, hostname=names[ip], seen_at=seen_at)
            for ip, mac in identified.items()
        ]
        logger.info(
            "Discovery: %d candidates, %d reachable, %d identified",
            len(candidates),
            len(alive),
            len(observations),
        )
        return observations

    async def _is_reachable(self, ip: str) -> bool:
        try:
            return await self._probe(ip)
        except (DiscoveryError, OSError) as exc:
            logger.debug("Probe of %s failed: %s", ip, exc)
            return False

    async def _bounded(
        self, items: Sequence[str], func: Callable[[str], Awaitable[T]]
    ) -> dict[str, T]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)
        results: dict[str, T] = {}

        async def worker() -> None:
            while True:
                try:
                    item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results[item] = await func(item)

        await asyncio.gather(*(worker() for _ in range(min(self._workers, len(items)))))
        return results


async def _ping_probe(ip: str, *, timeout: float) -> bool:
    return await ping(ip, timeout)
