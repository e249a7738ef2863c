from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Set


@dataclass
class Presence:
    """Usernames this client has seen join and not yet leave"""
    users: Set[str] = field(default_factory=set)
    me: Optional[str] = None
    server_version: Optional[str] = None

    def add(self, username: str) -> None:
        self.users.add(username)

    def remove(self, username: str) -> None:
        self.users.discard(username)

    def list_sorted(self) -> List[str]:
        names = set(self.users)
        if self.me:
            names.add(self.me)
        return sorted(names)
