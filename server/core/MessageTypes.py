from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict


PROTOCOL_VERSION = "1.0.0"


class MessageType(str, Enum):
    """Line Chat Relay message tokens."""

    # Client -> Server
    LOGIN = "LOGIN"                        # Claim a username

    # Server -> Client
    HI = "HI"                              # Greeting sent on connect
    LOGIN_RESP = "LOGIN_RESP"              # Reply to LOGIN
    JOINED = "JOINED"                      # Peer registered
    LEFT = "LEFT"                          # Registered peer disconnected
    PARSE_ERROR = "PARSE_ERROR"            # Malformed record
    UNKNOWN_COMMAND = "UNKNOWN_COMMAND"    # Unrecognized token


class SessionState(str, Enum):
    """Per-connection login state. AUTHENTICATED is terminal."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class LoginStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"


class LoginErrorCode(IntEnum):
    """Stable wire codes for LOGIN_RESP errors. Never renumber."""
    ALREADY_LOGGED_IN = 5000
    INVALID_USERNAME = 5001
    NAME_IN_USE = 5002


LOGIN_ERROR_DESCRIPTIONS: Dict[LoginErrorCode, str] = {
    LoginErrorCode.ALREADY_LOGGED_IN: "Already logged in",
    LoginErrorCode.INVALID_USERNAME: "Username has an invalid format or length",
    LoginErrorCode.NAME_IN_USE: "User with this name already exists",
}

