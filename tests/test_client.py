import asyncio
from contextlib import suppress

import pytest

from client.relay_cli import render_message
from client.state import Presence
from conftest import expect, wait_for
from shared.message import Message


def test_presence_tracks_join_and_leave():
    presence = Presence(me="Me")

    render_message(Message("JOINED", {"username": "Bravo"}), presence)
    render_message(Message("JOINED", {"username": "Alpha"}), presence)
    render_message(Message("LEFT", {"username": "Bravo"}), presence)

    assert presence.list_sorted() == ["Alpha", "Me"]


def test_render_handles_each_server_message():
    presence = Presence(me="Alatreon")

    assert "1.0.0" in render_message(Message("HI", {"version": "1.0.0"}), presence)
    assert "Logged in" in render_message(Message("LOGIN_RESP", {"status": "OK"}), presence)
    failed = render_message(
        Message("LOGIN_RESP", {"status": "ERROR", "code": 5002, "description": "User with this name already exists"}),
        presence,
    )
    assert "5002" in failed
    assert presence.me is None
    assert "parse" in render_message(Message("PARSE_ERROR", {}), presence)
    assert "command" in render_message(Message("UNKNOWN_COMMAND", {}), presence)


@pytest.mark.asyncio
async def test_client_session_dispatches_by_type(connect):
    session = await connect()
    await session.login("Mine")
    assert (await expect(session)).body == {"status": "OK"}
    seen = []

    async def on_presence(message):
        seen.append((message.command, message.get("username")))

    async def other(message):
        seen.append(("other", message.command))

    session.on("JOINED", on_presence)
    session.on("LEFT", on_presence)
    loop_task = asyncio.create_task(session.recv_loop(other))

    peer = await connect()
    await peer.login("Peer")
    await expect(peer)
    await peer.close()

    assert await wait_for(lambda: len(seen) == 2)
    loop_task.cancel()
    with suppress(asyncio.CancelledError):
        await loop_task

    assert seen == [("JOINED", "Peer"), ("LEFT", "Peer")]
