#!/usr/bin/env python3
"""
WebSocket -> TCP bridge

Lets a browser talk to the chat relay. Every WebSocket connection gets its own
TCP connection to the relay:

- TCP data is forwarded to the browser as text frames.
- Each WebSocket message is written to TCP with a trailing newline.
- When either side closes, the other is closed too.

No protocol logic lives here.
"""

from __future__ import annotations
import asyncio
import codecs
from contextlib import suppress
from typing import Optional

import websockets

from server.config import BridgeConfig
from shared.framing import DELIMITER
from shared.log import configure_root_logging, get_logger

logger = get_logger(__name__)


class WebSocketBridge:

    def __init__(self, config: Optional[BridgeConfig] = None, *, read_chunk_size: int = 4096):
        self.config = config or BridgeConfig()
        self.read_chunk_size = read_chunk_size
        self._server: Optional[websockets.Server] = None

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def listen(self) -> websockets.Server:
        self._server = await websockets.serve(self.handle_connection, self.config.host, self.config.port)
        logger.info(
            f"WebSocket bridge running on ws://{self.config.host}:{self.bound_port} "
            f"-> tcp://{self.config.upstream_host}:{self.config.upstream_port}"
        )
        return self._server

    async def start_bridge(self) -> None:
        """Serve until cancelled"""
        server = await self.listen()
        try:
            await server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Bridge task cancelled")
            raise
        finally:
            server.close()
            await server.wait_closed()

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def handle_connection(self, websocket: websockets.ServerConnection) -> None:
        remote_addr = websocket.remote_address
        logger.info(f"Browser connected to WebSocket bridge from {remote_addr}")
        try:
            reader, writer = await asyncio.open_connection(self.config.upstream_host, self.config.upstream_port)
        except OSError as e:
            logger.error(f"Cannot reach relay at {self.config.upstream_host}:{self.config.upstream_port}: {e}")
            await websocket.close(code=1011, reason="Upstream unavailable")
            return

        upstream = asyncio.create_task(self._tcp_to_websocket(reader, websocket))
        downstream = asyncio.create_task(self._websocket_to_tcp(websocket, writer))
        try:
            await asyncio.wait({upstream, downstream}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (upstream, downstream):
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            writer.close()
            with suppress(ConnectionError, OSError):
                await writer.wait_closed()
            await websocket.close()
            logger.info(f"Bridge connection {remote_addr} closed")

    async def _tcp_to_websocket(self, reader: asyncio.StreamReader, websocket: websockets.ServerConnection) -> None:
        # Chunks may end inside a multi-byte character
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await reader.read(self.read_chunk_size)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    await websocket.send(text)
            tail = decoder.decode(b"", final=True)
            if tail:
                await websocket.send(tail)
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Browser went away while forwarding relay data")
        except (ConnectionError, OSError) as e:
            logger.warning(f"Relay connection error: {e}")

    async def _websocket_to_tcp(self, websocket: websockets.ServerConnection, writer: asyncio.StreamWriter) -> None:
        try:
            async for message in websocket:
                if isinstance(message, str):
                    message = message.encode("utf-8")
                writer.write(message + DELIMITER)
                await writer.drain()
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Browser connection closed")
        except (ConnectionError, OSError) as e:
            logger.warning(f"Relay connection error: {e}")


async def main(config: Optional[BridgeConfig] = None, log_level: str = "INFO") -> None:
    """Main entry point"""
    configure_root_logging(log_level)
    bridge = WebSocketBridge(config)
    await bridge.start_bridge()


if __name__ == "__main__":
    asyncio.run(main())
