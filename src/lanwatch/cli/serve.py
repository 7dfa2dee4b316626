from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console

from lanwatch.errors import LanwatchError
from lanwatch.server import LanwatchServer

from .common import load_settings_or_exit

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    @app.command()
    def serve(
        host: Annotated[
            str | None, typer.Option("--host", help="Address to listen on")
        ] = None,
        port: Annotated[
            int | None, typer.Option("--port", "-p", help="Plain text listener port")
        ] = None,
        no_discovery: Annotated[
            bool,
            typer.Option("--no-discovery", help="Serve commands without scanning"),
        ] = False,
    ) -> None:
        """Run the monitor and the command server until interrupted."""
        console = Console()
        settings = load_settings_or_exit()

        overrides = {
            key: value for key, value in (("host", host), ("port", port)) if value is not None
        }
        if overrides:
            settings = settings.model_copy(
                update={"server": settings.server.model_copy(update=overrides)}
            )

        try:
            server = LanwatchServer.from_settings(settings, discovery=not no_discovery)
        except LanwatchError as exc:
            console.print(f"[red]✗[/red] {exc}")
            raise typer.Exit(1) from exc

        console.print(
            f"Serving on {settings.server.host}:{settings.server.port}"
            + (f" and {settings.server.tls_port} (TLS)" if settings.server.tls_enabled else "")
        )
        logger.info(
            "Allowlist %s, poll every %.0fs, ban window %.0fs",
            server.context.allowlist.path,
            settings.monitor.poll_seconds,
            settings.monitor.ban_seconds,
        )
        try:
            asyncio.run(server.serve_forever())
        except KeyboardInterrupt:
            console.print("\nStopped.")
        except (OSError, ValueError) as exc:
            console.print(f"[red]✗[/red] Could not start server: {exc}")
            raise typer.Exit(1) from exc
