from __future__ import annotations
import itertools
import threading


class SessionIdAllocator:
    """Issues a fresh integer id for every accepted connection"""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)

