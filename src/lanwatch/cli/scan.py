from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import typer
from rich.console import Console

from lanwatch.core import DeviceRegistry, DiscoveryPipeline, Scheduler
from lanwatch.utils.redaction import Redactor

from .common import device_table, load_settings_or_exit, open_allowlist_or_exit

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    @app.command()
    def scan(
        network: list[str] | None = typer.Option(
            None,
            "--network",
            "-n",
            help="Network to scan (e.g. 192.168.1.0/24). Uses config or local subnet if omitted.",
        ),
        redact: bool = typer.Option(
            False,
            "--redact",
            help="Redact sensitive values in output",
        ),
    ) -> None:
        """Run one discovery cycle and show what is on the network."""
        console = Console()

        settings = load_settings_or_exit()
        monitor = settings.monitor
        if network:
            monitor = monitor.model_copy(update={"networks": network, "extra_networks": []})

        store = open_allowlist_or_exit(settings)
        registry = DeviceRegistry(
            store,
            ban_window=timedelta(seconds=monitor.ban_seconds),
            auto_add=monitor.auto_add,
        )
        scheduler = Scheduler(
            DiscoveryPipeline.from_config(monitor),
            registry,
            interval=monitor.poll_seconds,
        )

        console.print("Scanning for devices...")
        logger.info(
            "Scan settings: ping_timeout=%.2fs, parallel_probes=%d",
            monitor.ping_timeout,
            monitor.parallel_probes,
        )
        report = asyncio.run(scheduler.run_once())

        devices = registry.all()
        if not devices:
            console.print("No devices found.")
            return

        console.print(device_table(devices, Redactor(enabled=redact)))
        console.print(
            f"\n[green]Found {report.observed} device(s)[/green]: "
            f"{report.known} known, [red]{report.unknown} unknown[/red] "
            f"in {report.duration:.1f}s"
        )
