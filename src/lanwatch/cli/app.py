from __future__ import annotations

from typing import Annotated

import typer

from lanwatch.utils.logging import setup_logging

from . import allowlist as allowlist_cmd
from . import config as config_cmd
from .info import register as register_info
from .scan import register as register_scan
from .send import register as register_send
from .serve import register as register_serve

app = typer.Typer(
    help="lanwatch - LAN device monitor with an allowlist", no_args_is_help=True
)

app.add_typer(config_cmd.app, name="config", help="Show or create the config file")
app.add_typer(allowlist_cmd.app, name="allowlist", help="Manage authorized devices")

register_serve(app)
register_scan(app)
register_send(app)
register_info(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-V", help="Show version and exit"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """lanwatch CLI."""
    setup_logging(verbose=verbose)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"lanwatch version {get_version('lanwatch')}")
        raise typer.Exit()
