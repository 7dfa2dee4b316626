from __future__ import annotations

import asyncio
from enum import Enum
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from lanwatch.errors import ClientConnectionError, ProtocolError
from lanwatch.protocol import Response, client_ssl_context, send_commands

from .common import device_table, load_settings_or_exit


class OutputFormat(str, Enum):
    raw = "raw"
    json = "json"
    table = "table"


def _print_response(console: Console, response: Response, output: OutputFormat) -> None:
    if output is OutputFormat.raw:
        typer.echo(response.encode(), nl=False)
        return
    if output is OutputFormat.json:
        typer.echo(response.to_json())
        return

    style = "green" if response.ok else "red"
    console.print(f"[{style}]{response.status.value}[/{style}] {escape(response.message)}")
    if response.data:
        for item in response.data.split(";"):
            console.print(f"  {escape(item)}")
    if response.devices:
        console.print(device_table(response.devices))


def register(app: typer.Typer) -> None:
    @app.command()
    def send(
        command: Annotated[
            list[str],
            typer.Argument(help="Command to send, e.g. LIST or ADD AA:BB:CC:DD:EE:FF"),
        ],
        host: Annotated[str, typer.Option("--host", help="Server address")] = "127.0.0.1",
        port: Annotated[
            int | None, typer.Option("--port", "-p", help="Server port (config default)")
        ] = None,
        tls: Annotated[bool, typer.Option("--tls", help="Connect with TLS")] = False,
        insecure: Annotated[
            bool, typer.Option("--insecure", help="Skip TLS certificate checks")
        ] = False,
        output: Annotated[
            OutputFormat, typer.Option("--format", "-f", help="Output format")
        ] = OutputFormat.table,
    ) -> None:
        """Send one command to a running lanwatch server."""
        console = Console()
        settings = load_settings_or_exit()
        if port is None:
            port = settings.server.tls_port if tls else settings.server.port

        ssl_context = client_ssl_context(insecure=insecure) if tls else None
        try:
            responses = asyncio.run(
                send_commands(host, port, [" ".join(command)], ssl_context=ssl_context)
            )
        except (ClientConnectionError, ProtocolError) as exc:
            console.print(f"[red]✗[/red] {escape(str(exc))}")
            raise typer.Exit(1) from exc

        for response in responses:
            _print_response(console, response, output)
        if not all(response.ok for response in responses):
            raise typer.Exit(1)
