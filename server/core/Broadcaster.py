from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional

from shared.log import get_logger
from server.core.ConnectionLink import ConnectionLink
from server.core.PresenceRegistry import SessionId

logger = get_logger(__name__)

# Resolves a session id to its live link (None once the transport is gone)
LinkResolver = Callable[[SessionId], Optional[ConnectionLink]]


class Broadcaster:
    """
    Delivers encoded messages to one session or to a set of sessions.

    Recipients are given as a snapshot of session ids taken by the caller;
    links are resolved at send time so sessions that have already gone away
    are skipped. Fan-out never waits on a recipient's socket: records are
    handed to each transport and slow readers are dropped by their link.
    """

    def __init__(self, resolve_link: LinkResolver):
        self._resolve_link = resolve_link

    async def send(self, link: ConnectionLink, msg_type: str, body: Optional[Dict[str, Any]] = None) -> bool:
        return await link.send_message(msg_type, body)

    async def broadcast_except(
        self,
        origin: Optional[SessionId],
        msg_type: str,
        body: Optional[Dict[str, Any]],
        recipients: Iterable[SessionId],
    ) -> int:
        """
        Send to every recipient except `origin`.

        A failure for one recipient is logged and does not stop the others.
        Returns the number of successful deliveries.
        """
        attempted = 0
        delivered = 0
        for session_id in recipients:
            if session_id == origin:
                continue
            link = self._resolve_link(session_id)
            if link is None or link.closed:
                logger.debug("Recipient already gone", extra={"session_id": session_id, "msg_type": msg_type})
                continue

            attempted += 1
            try:
                if link.send_nowait(msg_type, body):
                    delivered += 1
            except Exception as e:
                logger.error(f"Broadcast of {msg_type} failed: {e}", extra=link.log_context())

        if attempted:
            logger.info("Broadcasted %s to %d/%d sessions", msg_type, delivered, attempted)
        return delivered
