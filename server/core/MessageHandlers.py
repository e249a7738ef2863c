from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Dict

from server.core.MessageTypes import MessageType
from server.core.PresenceRegistry import LoginRejectedError
from shared.message import Message
from shared.log import get_logger

if TYPE_CHECKING:
    from server.server import ChatServer
    from server.core.ConnectionLink import ConnectionLink

logger = get_logger(__name__)

# Type alias for handler functions
CommandHandler = Callable[["ChatServer", "ConnectionLink", Message], Awaitable[None]]


class UserCommandHandlers:
    """
    Handlers for commands sent by clients.

    Each handler is a static method that processes one command token.
    """

    @staticmethod
    async def handle_login(server: "ChatServer", connection: "ConnectionLink", message: Message) -> None:
        """Handle LOGIN {username} - claim a name, then announce it to everyone else."""
        username = message.get("username")

        try:
            registration = await server.registry.register(connection.session_id, username)
        except LoginRejectedError as e:
            logger.info(f"LOGIN rejected ({int(e.code)}): {e}", extra=connection.log_context())
            await connection.on_login_error(e.code, e.description)
            return

        connection.set_username(registration.username)
        logger.info(f"{registration.username} logged in", extra=connection.log_context())

        # Written before this task first yields, so no later JOINED can reach
        # this session ahead of its own OK
        await connection.on_login_ok()
        await server.broadcaster.broadcast_except(
            connection.session_id,
            MessageType.JOINED.value,
            {"username": registration.username},
            registration.peers,
        )


async def handle_unknown_command(server: "ChatServer", connection: "ConnectionLink", message: Message) -> None:
    """Fallback for any token without a registered handler; answers the sender only."""
    logger.info("Unknown command %s", message.command, extra=connection.log_context())
    await connection.on_unknown_command()


# Handler registry mapping command tokens to their handlers
COMMAND_HANDLER_REGISTRY: Dict[str, CommandHandler] = {
    MessageType.LOGIN.value: UserCommandHandlers.handle_login,
}


async def dispatch(server: "ChatServer", connection: "ConnectionLink", message: Message) -> None:
    """Route a parsed message to its handler based on the command token."""
    handler = COMMAND_HANDLER_REGISTRY.get(message.command, handle_unknown_command)
    await handler(server, connection, message)
