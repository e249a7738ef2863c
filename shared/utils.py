from __future__ import annotations
import re
from typing import Any, Tuple

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helpers the server and the tools call to decide if a value taken from the wire
or from the command line is well formed.
"""

# 3-14 characters: ASCII letters, digits, underscore
_USERNAME_RE = re.compile(r'^[A-Za-z0-9_]{3,14}$')


def is_valid_username(value: Any) -> bool:
    """
    True only for a str of 3-14 ASCII letters, digits or underscores.
    Anything that is not a str (missing field, number, null) is invalid.
    """
    return isinstance(value, str) and bool(_USERNAME_RE.fullmatch(value))


def is_valid_port(port: Any) -> bool:
    """Port must be an integer between 1 and 65535 (bool is rejected)."""
    return isinstance(port, int) and not isinstance(port, bool) and 0 < port <= 65535


def parse_hostport(s: str) -> Tuple[str, int]:
    """
    Split 'hostname:port' or 'A.B.C.D:port' into (host, port).

    Raises ValueError when the host is empty or the port is not 1-65535.

    Examples: "localhost:1337", "192.168.1.5:8080"
    """
    if ':' not in s:
        raise ValueError(f"Expected host:port, got {s!r}")
    host, port_s = s.rsplit(':', 1)
    if not host:
        raise ValueError(f"Empty host in {s!r}")
    try:
        port = int(port_s)
    except ValueError:
        raise ValueError(f"Invalid port in {s!r}") from None
    if not is_valid_port(port):
        raise ValueError(f"Port out of range in {s!r}")
    return host, port
