from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
import json

from shared.framing import frame


class ParseError(Exception):
    """Raised when a record is not `TOKEN <json>`."""
    pass


@dataclass
class Message:
    """
    One wire record:

        TOKEN JSON\\n

    `command` is everything before the first space, `body` is the decoded JSON
    value after it. There are no ids or timestamps: the protocol is
    fire-and-forget.
    """
    command: str
    body: Any = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Union[bytes, str]) -> 'Message':
        """Parse one record (without its newline), raising ParseError"""
        if isinstance(record, bytes):
            try:
                record = record.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"Record is not UTF-8: {e}") from e

        space = record.find(" ")
        if space < 0:
            raise ParseError("Missing space between command and payload")

        command = record[:space]
        payload_text = record[space + 1:]
        try:
            body = json.loads(payload_text)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError, oversized integer literals and runaway nesting
            raise ParseError(f"Invalid JSON: {e}") from e

        return cls(command=command, body=body)

    def to_line(self) -> str:
        """Render as `TOKEN JSON` (no newline); key order is preserved"""
        return f"{self.command} {json.dumps(self.body, separators=(',', ':'), ensure_ascii=False)}"

    def to_bytes(self) -> bytes:
        return frame(self.to_line())

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Field lookup that tolerates non-object bodies"""
        if isinstance(self.body, dict):
            return self.body.get(key, default)
        return default


def parse_record(record: Union[bytes, str]) -> Message:
    return Message.from_record(record)


def encode_message(msg_type: str, body: Optional[Dict[str, Any]] = None) -> bytes:
    """Helper to build the framed bytes for `msg_type` with `body` ({} if omitted)"""
    return Message(msg_type, {} if body is None else body).to_bytes()
