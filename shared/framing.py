"""
framing.py - newline-delimited framing for asyncio byte streams.

Protocol:
- Each record is UTF-8 text terminated by "\\n" (a preceding "\\r" is tolerated).
- Bytes after the last "\\n" are a partial record; they are held back and
  completed by the next chunk.
- Blank records are dropped.

The decoder works on bytes, not text, so a multi-byte character split across
two reads is reassembled before anyone tries to decode it.
"""

from __future__ import annotations

from typing import Iterator

DELIMITER = b"\n"


class LineFrameDecoder:
    """Incremental splitter turning arbitrary chunks into complete records."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not yet form a full record."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> Iterator[bytes]:
        """
        Add a chunk and lazily yield every record it completes.

        Records are yielded without their delimiter. The generator must be
        consumed for the buffer to advance.
        """
        self._buffer.extend(chunk)
        while True:
            index = self._buffer.find(DELIMITER)
            if index < 0:
                return
            record = bytes(self._buffer[:index])
            del self._buffer[:index + 1]
            if record.endswith(b"\r"):
                record = record[:-1]
            if not record.strip():
                continue
            yield record

    def reset(self) -> bytes:
        """Drop and return whatever partial record is buffered."""
        leftover = bytes(self._buffer)
        self._buffer.clear()
        return leftover


def frame(text: str) -> bytes:
    """Encode one outbound record, appending the delimiter."""
    return text.encode("utf-8") + DELIMITER
