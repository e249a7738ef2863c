#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from bridge.bridge import main as bridge_main
from server.config import ConfigError, load_config, with_overrides

app = typer.Typer(help="WebSocket bridge for the Line Chat Relay")
console = Console()


@app.callback()
def cli() -> None:
    """WebSocket bridge for the Line Chat Relay"""


@app.command()
def run(
    host: Optional[str] = typer.Option(None, help="Address for the WebSocket listener"),
    port: Optional[int] = typer.Option(None, help="WebSocket port"),
    upstream_host: Optional[str] = typer.Option(None, help="Relay server host"),
    upstream_port: Optional[int] = typer.Option(None, help="Relay server TCP port"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Forward browser WebSocket traffic to the relay's TCP port."""
    try:
        relay_config = load_config(config)
        bridge_config = with_overrides(
            relay_config.bridge, "bridge",
            host=host, port=port, upstream_host=upstream_host, upstream_port=upstream_port,
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(code=2)

    console.print(
        f"[bold green]Bridge[/] ws://{bridge_config.host}:{bridge_config.port} "
        f"-> {bridge_config.upstream_host}:{bridge_config.upstream_port}"
    )
    try:
        asyncio.run(bridge_main(bridge_config, relay_config.server.log_level))
    except KeyboardInterrupt:
        console.print("Shutting down")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
