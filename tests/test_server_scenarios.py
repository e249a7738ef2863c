import asyncio
import sys

import pytest

from client.tcp_client import ClientSession
from conftest import expect, expect_nothing, wait_for


@pytest.mark.asyncio
async def test_hi_then_login_sequence(connect):
    session = await connect(consume_hi=False)

    hi = await expect(session)
    assert hi.command == "HI"
    assert hi.body == {"version": "1.0.0"}

    await session.login("ab")
    reply = await expect(session)
    assert reply.command == "LOGIN_RESP"
    assert reply.body["status"] == "ERROR"
    assert reply.body["code"] == 5001

    await session.login("Alatreon")
    assert (await expect(session)).body == {"status": "OK"}

    await session.login("Other")
    assert (await expect(session)).body["code"] == 5000


@pytest.mark.asyncio
async def test_near_simultaneous_duplicate_login(connect):
    first = await connect()
    second = await connect()

    await asyncio.gather(first.login("Dup"), second.login("Dup"))
    replies = [await expect(first), await expect(second)]

    statuses = sorted(r.body["status"] for r in replies)
    assert statuses == ["ERROR", "OK"]
    error = next(r for r in replies if r.body["status"] == "ERROR")
    assert error.body["code"] == 5002


@pytest.mark.asyncio
async def test_many_concurrent_claims_have_one_winner(connect):
    sessions = [await connect() for _ in range(8)]

    await asyncio.gather(*(s.login("Crowd") for s in sessions))
    replies = []
    for s in sessions:
        reply = await expect(s)
        while reply.command != "LOGIN_RESP":
            reply = await expect(s)
        replies.append(reply)

    assert sum(r.body["status"] == "OK" for r in replies) == 1
    assert sum(r.body.get("code") == 5002 for r in replies) == len(sessions) - 1


@pytest.mark.asyncio
async def test_presence_fan_out_and_departure(connect, running_server):
    a = await connect()
    b = await connect()
    lurker = await connect()
    await a.login("Alpha")
    assert (await expect(a)).body == {"status": "OK"}
    await b.login("Bravo")
    assert (await expect(b)).body == {"status": "OK"}
    assert (await expect(a)).body == {"username": "Bravo"}

    s = await connect()
    await s.login("Sierra")
    assert (await expect(s)).body == {"status": "OK"}
    for peer in (a, b):
        joined = await expect(peer)
        assert (joined.command, joined.body) == ("JOINED", {"username": "Sierra"})
    await expect_nothing(lurker)

    await s.close()
    for peer in (a, b):
        left = await expect(peer)
        assert (left.command, left.body) == ("LEFT", {"username": "Sierra"})
    await expect_nothing(a)
    assert await wait_for(lambda: not running_server.registry.is_name_in_use("Sierra"))

    again = await connect()
    await again.login("Sierra")
    assert (await expect(again)).body == {"status": "OK"}


@pytest.mark.asyncio
async def test_records_split_across_writes_and_batched(connect, running_server):
    session = await connect()

    session.writer.write(b'LOGIN {"user')
    await session.writer.drain()
    await asyncio.sleep(0.05)
    session.writer.write(b'name":"Chunky"}\r\n\nFOO {}\nbad\n')
    await session.writer.drain()

    assert (await expect(session)).body == {"status": "OK"}
    assert (await expect(session)).command == "UNKNOWN_COMMAND"
    assert (await expect(session)).command == "PARSE_ERROR"
    assert running_server.get_status()["usernames"] == ["Chunky"]


@pytest.mark.asyncio
async def test_malformed_input_keeps_connection_open(connect):
    session = await connect()

    for _ in range(2):
        await session.send_raw("garbage")
        reply = await expect(session)
        assert (reply.command, reply.body) == ("PARSE_ERROR", {})

    await session.login("StillHere")
    assert (await expect(session)).body == {"status": "OK"}


@pytest.mark.asyncio
async def test_hostile_json_gets_parse_error_and_keeps_the_session(connect, running_server):
    session = await connect()
    await session.login("Deep")
    assert (await expect(session)).body == {"status": "OK"}

    payloads = ["[" * 100000 + "]" * 100000]
    if hasattr(sys, "get_int_max_str_digits"):
        payloads.append("1" * 5000)

    for payload in payloads:
        await session.send_raw(f"LOGIN {payload}")
        reply = await expect(session)
        assert (reply.command, reply.body) == ("PARSE_ERROR", {})

    assert running_server.registry.is_name_in_use("Deep")
    await session.login("Deep")
    assert (await expect(session)).body["code"] == 5000


@pytest.mark.asyncio
async def test_abrupt_reset_cleans_up(connect, running_server):
    watcher = await connect()
    await watcher.login("Watcher")
    await expect(watcher)

    victim = ClientSession("127.0.0.1", running_server.bound_port)
    await victim.connect()
    await expect(victim)
    await victim.login("Victim")
    await expect(victim)
    assert (await expect(watcher)).body == {"username": "Victim"}

    victim.writer.transport.abort()

    left = await expect(watcher)
    assert (left.command, left.body) == ("LEFT", {"username": "Victim"})
    assert await wait_for(lambda: running_server.get_status()["connections"] == 1)


@pytest.mark.asyncio
async def test_status_reports_sessions(connect, running_server):
    a = await connect()
    await connect()
    await a.login("Alpha")
    await expect(a)

    status = running_server.get_status()

    assert status["version"] == "1.0.0"
    assert status["connections"] == 2
    assert status["authenticated"] == 1
    assert status["usernames"] == ["Alpha"]
