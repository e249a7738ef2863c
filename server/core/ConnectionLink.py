from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

from shared.message import Message
from shared.log import get_logger

from server.core.MessageTypes import (
    LOGIN_ERROR_DESCRIPTIONS,
    LoginErrorCode,
    LoginStatus,
    MessageType,
    SessionState,
)

logger = get_logger(__name__)

# Unread outbound bytes a client may accumulate before it is disconnected
MAX_PENDING_BYTES = 1024 * 1024
# Seconds to wait for buffered output to flush on close
CLOSE_TIMEOUT = 2.0


class ConnectionLink:
    """Wrapper around one client stream with its session metadata"""

    def __init__(self, session_id: int, writer: asyncio.StreamWriter, peer: Optional[str] = None):
        self.session_id = session_id
        self.writer = writer
        self.peer = peer
        self.username: Optional[str] = None
        self.connected_at: float = time.monotonic()
        self.last_seen: float = self.connected_at
        self.closed = False
        self._send_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        if self.username is None:
            return SessionState.UNAUTHENTICATED
        return SessionState.AUTHENTICATED

    def set_username(self, username: str) -> None:
        """Bind the identity; a session gets one username for its lifetime"""
        if self.username is not None:
            raise ValueError(f"Session {self.session_id} already logged in as {self.username}")
        self.username = username

    def log_context(self) -> Dict[str, Any]:
        return {"session_id": self.session_id, "username": self.username, "peer": self.peer}

    def _write(self, msg_type: str, body: Optional[Dict[str, Any]]) -> bool:
        """Hand the encoded record to the transport; False once the link is closed"""
        if self.closed:
            logger.debug("Skipping %s to closed session", msg_type, extra=self.log_context())
            return False
        message = Message(msg_type, {} if body is None else body)
        self.writer.write(message.to_bytes())
        logger.debug(f"--> {message.to_line()}", extra=self.log_context())
        return True

    async def send_message(self, msg_type: str, body: Optional[Dict[str, Any]] = None) -> bool:
        """
        Write `<TYPE> <json>\\n` to the client and wait for it to drain.

        Returns False instead of raising when the link is closed or the write
        fails, so a dead peer never breaks the caller. Only replies to the
        session's own commands go through here.
        """
        try:
            if not self._write(msg_type, body):
                return False
            async with self._send_lock:
                await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.warning(f"Connection lost while sending {msg_type}: {e}", extra=self.log_context())
        except Exception as e:
            logger.error(f"Error sending message: {e}", extra=self.log_context())
        return False

    def send_nowait(self, msg_type: str, body: Optional[Dict[str, Any]] = None) -> bool:
        """
        Write without waiting for the client to read it.

        Used for fan-out to other sessions. A client that leaves more than
        MAX_PENDING_BYTES unread is dropped instead of buffered forever.
        """
        try:
            if not self._write(msg_type, body):
                return False
        except (ConnectionError, OSError) as e:
            logger.warning(f"Connection lost while sending {msg_type}: {e}", extra=self.log_context())
            return False

        pending = self.pending_bytes()
        if pending > MAX_PENDING_BYTES:
            logger.warning(f"Client is not reading ({pending} bytes pending), dropping it", extra=self.log_context())
            self.abort()
            return False
        return True

    def pending_bytes(self) -> int:
        """Bytes written but not yet accepted by the socket"""
        transport = getattr(self.writer, "transport", None)
        if transport is None:
            return 0
        return transport.get_write_buffer_size()

    # Convenience methods for the server's replies
    async def send_hi(self, version: str) -> bool:
        return await self.send_message(MessageType.HI.value, {"version": version})

    async def on_login_ok(self) -> bool:
        return await self.send_message(MessageType.LOGIN_RESP.value, {"status": LoginStatus.OK.value})

    async def on_login_error(self, code: LoginErrorCode, description: Optional[str] = None) -> bool:
        """Send LOGIN_RESP with status ERROR and the stable numeric code"""
        body = {
            "status": LoginStatus.ERROR.value,
            "code": int(code),
            "description": description or LOGIN_ERROR_DESCRIPTIONS[code],
        }
        return await self.send_message(MessageType.LOGIN_RESP.value, body)

    async def on_parse_error(self) -> bool:
        return await self.send_message(MessageType.PARSE_ERROR.value, {})

    async def on_unknown_command(self) -> bool:
        return await self.send_message(MessageType.UNKNOWN_COMMAND.value, {})

    def mark_closed(self) -> None:
        """Stop all further delivery to this session"""
        self.closed = True

    async def close(self) -> None:
        """Close the underlying stream"""
        self.mark_closed()
        try:
            self.writer.close()
            await asyncio.wait_for(self.writer.wait_closed(), CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Client did not drain its output, aborting", extra=self.log_context())
            self.abort()
        except (ConnectionError, OSError):
            # peer already went away
            pass
        except Exception as e:
            logger.error(f"Error closing connection: {e}", extra=self.log_context())

    def abort(self) -> None:
        """Drop the transport without flushing; the receive loop then cleans up"""
        self.mark_closed()
        transport = getattr(self.writer, "transport", None)
        if transport is not None:
            transport.abort()
