from __future__ import annotations

import asyncio
import ipaddress
import socket
from types import SimpleNamespace

import pytest

from lanwatch.config import MonitorConfig
from lanwatch.core import (
    DiscoveryPipeline,
    HostnameChain,
    build_targets,
    parse_neighbor_table,
    targets_from_config,
)
from lanwatch.core import network as network_module
from lanwatch.core import resolvers as resolvers_module
from lanwatch.errors import DiscoveryError

IP_NEIGH_OUTPUT = """\
192.168.1.1 dev wlan0 lladdr aa:bb:cc:dd:ee:01 REACHABLE
192.168.1.20 dev wlan0 lladdr AA:BB:CC:DD:EE:02 STALE
192.168.1.30 dev wlan0  INCOMPLETE
192.168.1.40 dev wlan0 lladdr 00:11:22:33:44:55 FAILED
fe80::1 dev wlan0 lladdr aa:bb:cc:dd:ee:09 router REACHABLE
"""

ARP_WINDOWS_OUTPUT = """\
Interface: 192.168.1.5 --- 0x4
  Internet Address      Physical Address      Type
  192.168.1.1           aa-bb-cc-dd-ee-01     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
  224.0.0.22            01-00-5e-00-00-16     static
"""

ARP_LINUX_OUTPUT = """\
? (192.168.1.1) at aa:bb:cc:dd:ee:01 [ether] on wlan0
? (192.168.1.7) at <incomplete> on wlan0
"""


def test_parse_ip_neigh_output():
    table = parse_neighbor_table(IP_NEIGH_OUTPUT.splitlines())
    assert table == {
        "192.168.1.1": "AA:BB:CC:DD:EE:01",
        "192.168.1.20": "AA:BB:CC:DD:EE:02",
    }


def test_parse_arp_output_skips_broadcast_and_multicast():
    assert parse_neighbor_table(ARP_WINDOWS_OUTPUT.splitlines()) == {
        "192.168.1.1": "AA:BB:CC:DD:EE:01"
    }
    assert parse_neighbor_table(ARP_LINUX_OUTPUT.splitlines()) == {
        "192.168.1.1": "AA:BB:CC:DD:EE:01"
    }


def test_build_targets_caps_and_deduplicates():
    targets = build_targets(
        [ipaddress.IPv4Network("192.168.1.0/24")],
        3,
        ["192.168.1.0/24", "10.0.0.0/24", "bogus"],
        2,
    )
    assert targets == [
        "192.168.1.1",
        "192.168.1.2",
        "192.168.1.3",
        "10.0.0.1",
        "10.0.0.2",
    ]


def test_targets_from_config_uses_configured_networks():
    config = MonitorConfig(networks=["192.168.5.0/30"], extra_networks=["10.1.0.0/29"], extra_host_limit=1)
    assert targets_from_config(config) == ["192.168.5.1", "192.168.5.2", "10.1.0.1"]


def test_hostname_chain_first_name_wins_and_errors_are_skipped():
    calls: list[str] = []

    async def nothing(ip):
        calls.append("nothing")
        return None

    async def broken(ip):
        calls.append("broken")
        raise OSError("no route to host")

    async def named(ip):
        calls.append("named")
        return "printer.lan"

    async def never(ip):
        calls.append("never")
        return "unused"

    chain = HostnameChain(
        [("nothing", nothing), ("broken", broken), ("named", named), ("never", never)]
    )
    assert asyncio.run(chain.resolve("192.168.1.50")) == "printer.lan"
    assert calls == ["nothing", "broken", "named"]


def test_hostname_chain_falls_back_to_placeholder():
    async def nothing(ip):
        return None

    chain = HostnameChain([("nothing", nothing)])
    assert asyncio.run(chain.resolve("192.168.1.1")) == "Router"


@pytest.mark.parametrize(
    ("open_ports", "expected"),
    [({22, 443}, "WebDevice"), ({22, 3389}, "SSHDevice"), ({161}, "SNMPDevice"), (set(), None)],
)
def test_port_signature_uses_table_order(monkeypatch, open_ports, expected):
    async def fake_port_open(ip, port, timeout):
        return port in open_ports

    monkeypatch.setattr(resolvers_module, "port_open", fake_port_open)
    resolve = resolvers_module.port_signature(0.01)
    assert asyncio.run(resolve("192.168.1.60")) == expected


def test_pipeline_skips_failed_and_unidentified_candidates():
    async def probe(ip):
        if ip == "10.0.0.3":
            raise DiscoveryError(ip, "reachability probe", "ping missing")
        return ip in {"10.0.0.1", "10.0.0.2", "10.0.0.4"}

    async def neighbors():
        return {
            "10.0.0.1": "AA:BB:CC:DD:EE:01",
            "10.0.0.2": "AA:BB:CC:DD:EE:02",
            "10.0.0.9": "AA:BB:CC:DD:EE:09",
        }

    async def known_names(ip):
        return {"10.0.0.1": "gateway"}.get(ip)

    pipeline = DiscoveryPipeline(
        lambda: ["10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4"],
        probe=probe,
        neighbors=neighbors,
        interfaces=dict,
        hostnames=HostnameChain([("known", known_names)]),
        workers=2,
    )
    observations = asyncio.run(pipeline.scan())

    assert {obs.ip: (obs.mac, obs.hostname) for obs in observations} == {
        "10.0.0.1": ("AA:BB:CC:DD:EE:01", "gateway"),
        "10.0.0.2": ("AA:BB:CC:DD:EE:02", "Switch"),
    }


def test_pipeline_bounds_concurrent_probes():
    active = 0
    peak = 0

    async def probe(ip):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return False

    async def neighbors():
        return {}

    pipeline = DiscoveryPipeline(
        lambda: [f"10.0.0.{i}" for i in range(1, 21)],
        probe=probe,
        neighbors=neighbors,
        interfaces=dict,
        workers=3,
    )
    assert asyncio.run(pipeline.scan()) == []
    assert peak == 3


def test_pipeline_identifies_own_host_from_interfaces():
    async def probe(ip):
        return True

    async def neighbors():
        return {"10.0.0.1": "AA:BB:CC:DD:EE:01"}

    pipeline = DiscoveryPipeline(
        lambda: ["10.0.0.1", "10.0.0.5", "10.0.0.6"],
        probe=probe,
        neighbors=neighbors,
        interfaces=lambda: {"10.0.0.5": "AA:BB:CC:DD:EE:05"},
        hostnames=HostnameChain([]),
    )
    observations = asyncio.run(pipeline.scan())

    assert {obs.ip: obs.mac for obs in observations} == {
        "10.0.0.1": "AA:BB:CC:DD:EE:01",
        "10.0.0.5": "AA:BB:CC:DD:EE:05",
    }


def test_local_interface_macs_pairs_addresses_with_link_layer(monkeypatch):
    def addr(family, address):
        return SimpleNamespace(family=family, address=address, netmask=None)

    link = network_module.psutil.AF_LINK
    interfaces = {
        "lo": [addr(link, "00:00:00:00:00:00"), addr(socket.AF_INET, "127.0.0.1")],
        "eth0": [addr(socket.AF_INET, "192.168.1.5"), addr(link, "aa-bb-cc-dd-ee-05")],
        "tun0": [addr(socket.AF_INET, "10.8.0.2")],
    }
    monkeypatch.setattr(network_module.psutil, "net_if_addrs", lambda: interfaces)

    assert network_module.local_interface_macs() == {"192.168.1.5": "AA:BB:CC:DD:EE:05"}


def test_cancelled_ping_kills_the_child_process(monkeypatch):
    class HangingProcess:
        def __init__(self):
            self.returncode = None
            self.killed = False
            self._exited = asyncio.Event()

        async def wait(self):
            await self._exited.wait()
            return self.returncode

        def kill(self):
            self.killed = True
            self.returncode = -9
            self._exited.set()

    process = HangingProcess()

    async def fake_exec(*_args, **_kwargs):
        return process

    monkeypatch.setattr(network_module.asyncio, "create_subprocess_exec", fake_exec)

    async def run():
        task = asyncio.create_task(network_module.ping("10.0.0.1", 5.0))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert process.killed
