from __future__ import annotations

from .discovery import DiscoveryPipeline
from .network import (
    build_targets,
    detect_local_network,
    local_interface_macs,
    parse_neighbor_table,
    ping,
    port_open,
    read_neighbor_table,
    targets_from_config,
)
from .registry import DeviceRegistry, UpsertResult
from .resolvers import HostnameChain, default_chain, placeholder_name
from .scheduler import CycleReport, Scheduler, SchedulerState

__all__ = [
    "CycleReport",
    "DeviceRegistry",
    "DiscoveryPipeline",
    "HostnameChain",
    "Scheduler",
    "SchedulerState",
    "UpsertResult",
    "build_targets",
    "default_chain",
    "detect_local_network",
    "local_interface_macs",
    "parse_neighbor_table",
    "placeholder_name",
    "ping",
    "port_open",
    "read_neighbor_table",
    "targets_from_config",
]
