#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import os
from typing import Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.table import Table

from shared.message import Message, ParseError, parse_record
from shared.utils import is_valid_username, parse_hostport
from shared.log import get_logger
from .state import Presence
from .tcp_client import ClientSession

app = typer.Typer(help="Line Chat Relay terminal client")
console = Console()
logger = get_logger(__name__)

HELP_TEXT = "/login <name>, /list, /raw <TOKEN> <json>, /help, /quit"


def _default_server() -> str:
    return os.getenv("RELAY_SERVER", "127.0.0.1:1337")


def render_message(message: Message, presence: Presence) -> Optional[str]:
    """Update presence from an inbound message and return the line to print"""
    if message.command == "HI":
        presence.server_version = message.get("version")
        return f"[bold green]Connected[/] to relay v{presence.server_version}"
    if message.command == "LOGIN_RESP":
        if message.get("status") == "OK":
            return f"[bold green]Logged in[/] as {presence.me}"
        presence.me = None
        return f"[red]Login failed {message.get('code')}[/]: {message.get('description')}"
    if message.command == "JOINED":
        username = message.get("username")
        if isinstance(username, str):
            presence.add(username)
        return f"[cyan]{username} joined[/]"
    if message.command == "LEFT":
        username = message.get("username")
        if isinstance(username, str):
            presence.remove(username)
        return f"[yellow]{username} left[/]"
    if message.command == "PARSE_ERROR":
        return "[red]Server could not parse the last message[/]"
    if message.command == "UNKNOWN_COMMAND":
        return "[red]Server does not know that command[/]"
    return f"[dim]recv {message.to_line()}[/]"


@app.callback()
def cli() -> None:
    """Line Chat Relay terminal client"""


@app.command()
def run(
    server: str = typer.Option(_default_server(), help="host:port of the relay"),
    username: Optional[str] = typer.Option(None, help="Log in with this name right away"),
):
    """Start interactive client loop."""
    try:
        host, port = parse_hostport(server)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=2)

    async def main_loop() -> None:
        session = ClientSession(host, port)
        try:
            await session.connect()
        except OSError as e:
            console.print(f"[red]Cannot connect to {server}[/]: {e}")
            raise typer.Exit(code=1)

        presence = Presence()

        async def default_handler(message: Message) -> None:
            line = render_message(message, presence)
            if line:
                console.print(line)

        recv_task = asyncio.create_task(session.recv_loop(default_handler))

        async def login(name: str) -> None:
            if not is_valid_username(name):
                console.print("[yellow]Names are 3-14 letters, digits or underscores; sending anyway[/]")
            presence.me = name
            await session.login(name)

        try:
            if username:
                await login(username)
            while not recv_task.done():
                line = (await ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if line == "/help":
                    console.print(HELP_TEXT)
                    continue
                if line == "/list":
                    table = Table(title="Online Users")
                    table.add_column("Username")
                    for u in presence.list_sorted():
                        table.add_row(u)
                    console.print(table)
                    continue
                if line.startswith("/login "):
                    await login(line[len("/login "):].strip())
                    continue
                if line.startswith("/raw "):
                    raw = line[len("/raw "):].strip()
                    try:
                        parse_record(raw)
                    except ParseError as e:
                        console.print(f"[yellow]Not a valid record ({e}); sending anyway[/]")
                    await session.send_raw(raw)
                    continue
                console.print(f"Unknown command. {HELP_TEXT}")
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            recv_task.cancel()
            await session.close()

    asyncio.run(main_loop())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
