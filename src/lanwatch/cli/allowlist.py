from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from lanwatch.errors import LanwatchError
from lanwatch.models import AllowlistEntry

from .common import device_table, load_settings_or_exit, open_allowlist_or_exit

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_entries() -> None:
    """List authorized devices."""
    settings = load_settings_or_exit()
    store = open_allowlist_or_exit(settings)
    console = Console()

    entries = store.entries()
    if not entries:
        console.print("Allowlist is empty.")
        console.print(f"Use 'lanwatch allowlist add' or edit {store.path}")
        return

    console.print(device_table(entry.as_device() for entry in entries))
    console.print(f"\n{len(entries)} authorized device(s) in {store.path}")


@app.command("add")
def add_entry(
    mac: Annotated[str, typer.Argument(help="MAC address (XX:XX:XX:XX:XX:XX)")],
    hostname: Annotated[str | None, typer.Argument(help="Hostname")] = None,
    ip: Annotated[str | None, typer.Argument(help="IPv4 address")] = None,
) -> None:
    """Authorize a device."""
    settings = load_settings_or_exit()
    store = open_allowlist_or_exit(settings)
    console = Console()

    try:
        entry = AllowlistEntry.create(mac, hostname, ip)
        added = store.add(entry)
    except LanwatchError as exc:
        console.print(f"[red]✗[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    if not added:
        console.print(f"[yellow]![/yellow] Device {entry.mac} is already in the allowlist")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Added {entry.compact()}")


@app.command("remove")
def remove_entry(
    mac: Annotated[str, typer.Argument(help="MAC address to remove")],
) -> None:
    """Revoke a device."""
    settings = load_settings_or_exit()
    store = open_allowlist_or_exit(settings)
    console = Console()

    try:
        removed = store.remove(mac)
    except LanwatchError as exc:
        console.print(f"[red]✗[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    if not removed:
        console.print(f"[yellow]![/yellow] Device {mac} not found")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Removed {mac}")
