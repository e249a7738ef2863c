import asyncio
from typing import List, Optional

import pytest
import pytest_asyncio

from client.tcp_client import ClientSession
from server.config import ServerConfig
from server.core.ConnectionLink import ConnectionLink
from server.server import ChatServer
from shared.message import Message, parse_record


class DummyWriter:
    """Stands in for asyncio.StreamWriter; records everything written."""

    def __init__(self, fail: bool = False) -> None:
        self.buffer = bytearray()
        self.fail = fail
        self.closed = False

    def write(self, data: bytes) -> None:
        if self.fail:
            raise ConnectionResetError("peer gone")
        self.buffer.extend(data)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass

    def get_extra_info(self, name: str, default=None):
        if name == "peername":
            return ("127.0.0.1", 50000)
        return default

    @property
    def lines(self) -> List[bytes]:
        return [line for line in bytes(self.buffer).split(b"\n") if line]

    @property
    def messages(self) -> List[Message]:
        return [parse_record(line) for line in self.lines]


class YieldingWriter(DummyWriter):
    """drain() gives other tasks a turn, like a real socket under load."""

    async def drain(self) -> None:
        await asyncio.sleep(0)


class BlockedWriter(DummyWriter):
    """A client that stopped reading: drain() waits until unblock(), bytes pile up."""

    def __init__(self) -> None:
        super().__init__()
        self.aborted = False
        self.transport = self
        self._released = asyncio.Event()

    async def drain(self) -> None:
        await self._released.wait()

    def unblock(self) -> None:
        self._released.set()

    def get_write_buffer_size(self) -> int:
        return len(self.buffer)

    def abort(self) -> None:
        self.aborted = True


def attach_link(
    server: ChatServer, session_id: int, fail: bool = False, writer: Optional[DummyWriter] = None,
) -> ConnectionLink:
    """Register a fake connection with the server's transport map."""
    link = ConnectionLink(session_id, writer if writer is not None else DummyWriter(fail=fail))
    server.links[session_id] = link
    return link


def sent(link: ConnectionLink) -> List[Message]:
    return link.writer.messages  # type: ignore[attr-defined]


async def expect(session: ClientSession, timeout: float = 2.0) -> Message:
    return await asyncio.wait_for(session.recv(), timeout)


async def expect_nothing(session: ClientSession, timeout: float = 0.2) -> None:
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(session.recv(), timeout)


@pytest.fixture
def chat_server() -> ChatServer:
    return ChatServer(ServerConfig(host="127.0.0.1", port=0))


@pytest_asyncio.fixture
async def running_server():
    server = ChatServer(ServerConfig(host="127.0.0.1", port=0))
    await server.listen()
    try:
        yield server
    finally:
        await server.stop()


@pytest_asyncio.fixture
async def connect(running_server):
    """Factory opening client sessions that have already consumed HI."""
    sessions: List[ClientSession] = []

    async def _connect(consume_hi: bool = True) -> ClientSession:
        session = ClientSession("127.0.0.1", running_server.bound_port)
        await session.connect()
        sessions.append(session)
        if consume_hi:
            hi = await expect(session)
            assert hi.command == "HI"
        return session

    try:
        yield _connect
    finally:
        for session in sessions:
            await session.close()


async def wait_for(predicate, timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False
