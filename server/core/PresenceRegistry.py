from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set, Tuple

from shared.log import get_logger
from shared.utils import is_valid_username
from server.core.MessageTypes import LOGIN_ERROR_DESCRIPTIONS, LoginErrorCode

logger = get_logger(__name__)

SessionId = int


class LoginRejectedError(Exception):
    """Base for LOGIN rejections; carries the wire code and description."""
    code: LoginErrorCode

    def __init__(self, detail: Optional[str] = None):
        self.description = LOGIN_ERROR_DESCRIPTIONS[self.code]
        super().__init__(detail or self.description)

class AlreadyLoggedInError(LoginRejectedError):
    """Raised when a session that holds a username sends LOGIN again."""
    code = LoginErrorCode.ALREADY_LOGGED_IN

class InvalidUsernameError(LoginRejectedError):
    """Raised when the claimed name is not 3-14 letters, digits or underscores."""
    code = LoginErrorCode.INVALID_USERNAME

class NameInUseError(LoginRejectedError):
    """Raised when another session already holds the claimed name."""
    code = LoginErrorCode.NAME_IN_USE


@dataclass(frozen=True)
class Registration:
    """Result of a committed LOGIN: who else was online at commit time."""
    session_id: SessionId
    username: str
    peers: Tuple[SessionId, ...]


@dataclass(frozen=True)
class Departure:
    """Result of removing an authenticated session."""
    session_id: SessionId
    username: str
    peers: Tuple[SessionId, ...]


class PresenceRegistry:
    """
    Which sessions are logged in, and under which name.

    Two views are kept in lockstep: session id -> username, and the set of
    names in use. Every read-then-write runs under one asyncio.Lock, so
    concurrent LOGINs for one name cannot both commit.
    """

    def __init__(self) -> None:
        self._sessions: Dict[SessionId, str] = {}
        self._names: Set[str] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    async def register(self, session_id: SessionId, username: object) -> Registration:
        """
        Claim `username` for `session_id`.

        Checks run in wire-code order and the first failure wins:
        5000 already logged in, 5001 bad format, 5002 name taken.
        """
        async with self._lock:
            if session_id in self._sessions:
                raise AlreadyLoggedInError(f"Session {session_id} is {self._sessions[session_id]}")
            if not is_valid_username(username):
                raise InvalidUsernameError(f"Rejected username {username!r}")
            assert isinstance(username, str)
            if username in self._names:
                raise NameInUseError(f"Username {username} is taken")

            peers = tuple(self._sessions)
            self._sessions[session_id] = username
            self._names.add(username)

        logger.debug("Registered %s (%d online)", username, len(peers) + 1, extra={"session_id": session_id})
        return Registration(session_id=session_id, username=username, peers=peers)

    async def unregister(self, session_id: SessionId) -> Optional[Departure]:
        """Remove the session; None if it was never (or is no longer) registered"""
        async with self._lock:
            username = self._sessions.pop(session_id, None)
            if username is None:
                return None
            self._names.discard(username)
            peers = tuple(self._sessions)

        logger.debug("Unregistered %s (%d online)", username, len(peers), extra={"session_id": session_id})
        return Departure(session_id=session_id, username=username, peers=peers)

    def username_of(self, session_id: SessionId) -> Optional[str]:
        return self._sessions.get(session_id)

    def is_name_in_use(self, username: str) -> bool:
        return username in self._names

    def snapshot(self) -> Dict[SessionId, str]:
        """Copy of session id -> username at this instant"""
        return dict(self._sessions)

    def names_in_use(self) -> FrozenSet[str]:
        return frozenset(self._names)
