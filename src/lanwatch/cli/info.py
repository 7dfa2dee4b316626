from __future__ import annotations

import typer
from rich.console import Console

from lanwatch.config import allowlist_path_from_settings, data_dir_from_settings

from .common import load_settings_or_exit, open_allowlist_or_exit, resolve_config_path_or_exit


def register(app: typer.Typer) -> None:
    @app.command()
    def info() -> None:
        """Show lanwatch paths, settings and allowlist stats."""
        settings = load_settings_or_exit()
        store = open_allowlist_or_exit(settings)

        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        console = Console()

        console.print("[bold]lanwatch Info[/bold]\n")
        console.print(f"Data directory: {data_dir_from_settings(settings)}")
        console.print(f"Allowlist: {allowlist_path_from_settings(settings)}")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")

        server = settings.server
        monitor = settings.monitor
        console.print("\n[bold]Server[/bold]")
        console.print(f"Listen: {server.host}:{server.port}")
        console.print(f"TLS: {f'port {server.tls_port}' if server.tls_enabled else 'disabled'}")
        console.print(f"Read timeout: {server.read_timeout}s x {server.timeout_retries}")

        console.print("\n[bold]Monitor[/bold]")
        console.print(f"Poll interval: {monitor.poll_seconds}s")
        console.print(f"Ban window: {monitor.ban_seconds}s")
        console.print(f"Networks: {', '.join(monitor.networks) or 'local subnet'}")
        console.print(f"Extra networks: {', '.join(monitor.extra_networks) or 'none'}")
        console.print(f"Auto-add: {'on' if monitor.auto_add else 'off'}")

        console.print("\n[bold]Statistics[/bold]")
        console.print(f"Authorized devices: {store.count}")
