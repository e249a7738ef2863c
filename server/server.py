#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import time
from typing import Any, Dict, Optional

from server.config import ServerConfig
from server.core.Broadcaster import Broadcaster
from server.core.ConnectionLink import ConnectionLink
from server.core.MessageHandlers import dispatch
from server.core.MessageTypes import MessageType
from server.core.PresenceRegistry import PresenceRegistry, SessionId
from server.identity.ids import SessionIdAllocator
from shared.framing import LineFrameDecoder
from shared.message import ParseError, parse_record
from shared.log import configure_root_logging, get_logger, log_protocol_message

# Configure Logging
logger = get_logger(__name__)


class ChatServer:

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        *,
        registry: Optional[PresenceRegistry] = None,
    ):
        self.config = config or ServerConfig()
        # Identity bookkeeping: session id -> username (shared, lock-guarded)
        self.registry = registry if registry is not None else PresenceRegistry()
        # Transport bookkeeping: session id -> live link (every open connection)
        self.links: Dict[SessionId, ConnectionLink] = {}
        self.broadcaster = Broadcaster(self.links.get)
        self._ids = SessionIdAllocator()
        self._server: Optional[asyncio.AbstractServer] = None

        logger.info(f"Initialized chat server v{self.config.version}")

    @property
    def sockets(self):
        return self._server.sockets if self._server is not None else ()

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound (useful when configured with port 0)"""
        for sock in self.sockets:
            return sock.getsockname()[1]
        return None

    async def listen(self) -> asyncio.AbstractServer:
        """Bind the TCP listener without blocking"""
        self._server = await asyncio.start_server(
            self.handle_connection,
            self.config.host,
            self.config.port,
        )
        logger.info(f"Chat server listening on tcp://{self.config.host}:{self.bound_port}")
        return self._server

    async def start_server(self) -> None:
        """Start the TCP server and serve until cancelled"""
        logger.info(f"Starting chat server on {self.config.host}:{self.config.port}")
        server = await self.listen()
        async with server:
            try:
                await server.serve_forever()
            except asyncio.CancelledError:
                logger.info("Server task cancelled")
                raise
            finally:
                await self.close_all()

    async def close_all(self) -> None:
        for link in list(self.links.values()):
            await self.cleanup_connection(link)

    async def stop(self) -> None:
        """Stop accepting, then release every open session"""
        if self._server is not None:
            self._server.close()
        await self.close_all()
        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """
        Receive loop for one client.

        Greets with HI, then feeds every chunk through the line decoder and
        processes records in arrival order. EOF, reset and any other transport
        error all end in the same cleanup.
        """
        peername = writer.get_extra_info("peername")
        peer = f"{peername[0]}:{peername[1]}" if isinstance(peername, tuple) else None
        connection = ConnectionLink(self._ids.next_id(), writer, peer=peer)
        self.links[connection.session_id] = connection
        logger.info("Client connected", extra=connection.log_context())

        decoder = LineFrameDecoder()
        try:
            await connection.send_hi(self.config.version)

            while True:
                chunk = await reader.read(self.config.read_chunk_size)
                if not chunk:
                    break
                connection.last_seen = time.monotonic()
                for record in decoder.feed(chunk):
                    await self.process_record(connection, record)

            if decoder.pending:
                logger.debug("Dropping %d bytes of unterminated input", decoder.pending, extra=connection.log_context())
            logger.info("Client disconnected", extra=connection.log_context())
        except (ConnectionError, OSError) as e:
            logger.warning(f"Transport error: {e}", extra=connection.log_context())
        except asyncio.CancelledError:
            logger.info("Connection task cancelled", extra=connection.log_context())
            raise
        except Exception as e:
            logger.error(f"Error handling connection: {e}", extra=connection.log_context(), exc_info=True)
        finally:
            await self.cleanup_connection(connection)

    async def process_record(self, connection: ConnectionLink, record: bytes) -> None:
        """Parse one framed record and dispatch it; never raises for bad input"""
        try:
            message = parse_record(record)
        except ParseError as e:
            logger.info(f"Parse error: {e}", extra=connection.log_context())
            await connection.on_parse_error()
            return

        try:
            log_protocol_message(logger, "debug", f"<-- {message.to_line()}", msg_type=message.command, **connection.log_context())
            await dispatch(self, connection, message)
        except Exception as exc:
            logger.error(
                "Error handling command %s: %s", message.command, exc,
                extra=connection.log_context(), exc_info=True,
            )

    async def cleanup_connection(self, connection: ConnectionLink) -> None:
        """
        Release the session: stop delivery to it, drop its name from the
        registry and tell the remaining sessions it left. Safe to call twice.
        """
        connection.mark_closed()
        self.links.pop(connection.session_id, None)

        departure = await self.registry.unregister(connection.session_id)
        if departure is not None:
            logger.info(f"{departure.username} left", extra=connection.log_context())
            await self.broadcaster.broadcast_except(
                connection.session_id,
                MessageType.LEFT.value,
                {"username": departure.username},
                departure.peers,
            )

        await connection.close()

    def get_status(self) -> Dict[str, Any]:
        """Expose internal status for health/diagnostics."""
        return {
            "version": self.config.version,
            "listening": f"{self.config.host}:{self.bound_port or self.config.port}",
            "connections": len(self.links),
            "authenticated": len(self.registry),
            "usernames": sorted(self.registry.names_in_use()),
        }


async def main(config: Optional[ServerConfig] = None) -> None:
    """Main entry point"""
    config = config or ServerConfig()
    configure_root_logging(config.log_level)
    server = ChatServer(config)
    await server.start_server()


if __name__ == "__main__":
    asyncio.run(main())
