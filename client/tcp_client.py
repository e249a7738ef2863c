from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.framing import LineFrameDecoder
from shared.message import Message, ParseError, encode_message, parse_record
from shared.log import get_logger

logger = get_logger(__name__)


MessageHandler = Callable[[Message], Awaitable[None]]


class ClientSession:
    """
    Relay client session over a plain TCP stream.

    Outbound messages are framed `TOKEN JSON\\n`; inbound bytes go through the
    same line decoder and parser the server uses.
    """

    def __init__(self, host: str, port: int, *, read_chunk_size: int = 4096) -> None:
        self.host = host
        self.port = port
        self.read_chunk_size = read_chunk_size
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.handlers: Dict[str, MessageHandler] = {}
        self._decoder = LineFrameDecoder()

    async def connect(self) -> None:
        """Open the TCP connection to the relay"""
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port)

    async def send(self, msg_type: str, body: Optional[Dict[str, Any]] = None) -> None:
        assert self.writer is not None
        self.writer.write(encode_message(msg_type, body))
        await self.writer.drain()
        logger.debug("Sent %s", msg_type)

    async def send_raw(self, line: str) -> None:
        """Send a hand-written record; the newline is added here"""
        assert self.writer is not None
        self.writer.write(line.encode("utf-8") + b"\n")
        await self.writer.drain()

    async def login(self, username: str) -> None:
        await self.send("LOGIN", {"username": username})

    def on(self, msg_type: str, handler: MessageHandler) -> None:
        self.handlers[msg_type] = handler

    async def recv(self) -> Message:
        """Read until one full message is available (for scripted use)"""
        assert self.reader is not None
        data = b""
        while True:
            # records left over from an earlier chunk come out first
            for record in self._decoder.feed(data):
                return parse_record(record)
            data = await self.reader.read(self.read_chunk_size)
            if not data:
                raise ConnectionError("Relay closed the connection")

    async def recv_loop(self, default_handler: Optional[MessageHandler] = None) -> None:
        assert self.reader is not None
        data = b""
        while True:
            for record in self._decoder.feed(data):
                try:
                    message = parse_record(record)
                except ParseError as e:
                    logger.error("Failed to parse inbound record: %s", e)
                    continue
                handler = self.handlers.get(message.command, default_handler)
                if handler:
                    try:
                        await handler(message)
                    except Exception as e:
                        logger.error("Handler for %s failed: %s", message.command, e)
            data = await self.reader.read(self.read_chunk_size)
            if not data:
                logger.info("Relay closed the connection")
                return

    async def close(self) -> None:
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass
