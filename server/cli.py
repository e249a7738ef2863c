#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from server.config import ConfigError, load_config, with_overrides
from server.server import main as server_main

app = typer.Typer(help="Line Chat Relay server")
console = Console()


@app.callback()
def cli() -> None:
    """Line Chat Relay server"""


@app.command()
def run(
    host: Optional[str] = typer.Option(None, help="Address to listen on"),
    port: Optional[int] = typer.Option(None, help="TCP port to listen on"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Run the chat relay until interrupted."""
    try:
        relay_config = load_config(config)
        server_config = with_overrides(relay_config.server, "server", host=host, port=port, log_level=log_level)
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(code=2)

    console.print(f"[bold green]Chat relay[/] v{server_config.version} on {server_config.host}:{server_config.port}")
    try:
        asyncio.run(server_main(server_config))
    except KeyboardInterrupt:
        console.print("Shutting down")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
