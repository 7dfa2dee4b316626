from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import typer
from rich.table import Table

from lanwatch.config import (
    Settings,
    allowlist_path_from_settings,
    get_settings,
    resolve_config_path,
)
from lanwatch.errors import LanwatchError
from lanwatch.models import DeviceRecord
from lanwatch.storage import AllowlistStore
from lanwatch.utils.redaction import Redactor


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def open_allowlist_or_exit(settings: Settings) -> AllowlistStore:
    try:
        return AllowlistStore.open(allowlist_path_from_settings(settings))
    except LanwatchError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def format_last_seen(record: DeviceRecord) -> str:
    if record.last_seen is None:
        return "never"
    return record.last_seen.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def device_table(records: Iterable[DeviceRecord], redactor: Redactor | None = None) -> Table:
    redactor = redactor or Redactor(enabled=False)
    table = Table()
    table.add_column("IP", style="cyan")
    table.add_column("MAC Address")
    table.add_column("Hostname", style="green")
    table.add_column("Known")
    table.add_column("Last Seen")

    for record in records:
        table.add_row(
            redactor.redact_ip(record.ip),
            redactor.redact_mac(record.mac),
            redactor.redact_hostname(record.hostname),
            "[green]yes[/green]" if record.known else "[red]no[/red]",
            format_last_seen(record),
        )
    return table
