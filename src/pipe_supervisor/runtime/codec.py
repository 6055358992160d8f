"""Key/value line codec used by merged output mode.

Each line on the wire is ``<key><SEP><value>`` where ``SEP`` is a single
reserved byte that may not appear inside the key. The value may contain the
separator; only the first occurrence splits the line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from ..errors import DecodeError, InvalidArgumentError

__all__ = [
    "DEFAULT_SEPARATOR",
    "Message",
    "MessageCodec",
]

DEFAULT_SEPARATOR: Final[bytes] = b"\t"


@dataclass(frozen=True)
class Message:
    """A decoded key/value record.

    Attributes:
        key: Record key (never contains the separator)
        value: Record payload
    """

    key: bytes
    value: bytes


@dataclass(frozen=True)
class MessageCodec:
    """Split-on-separator codec for :class:`Message` records."""

    separator: bytes = DEFAULT_SEPARATOR

    def __post_init__(self) -> None:
        if len(self.separator) != 1:
            raise InvalidArgumentError(
                f"separator must be exactly one byte, got {self.separator!r}"
            )
        if self.separator in (b"\n", b"\r"):
            raise InvalidArgumentError("separator cannot be a line terminator")

    def encode(self, message: Message) -> bytes:
        """Serialize a message without the trailing newline.

        Raises:
            TypeError: If the item is not a Message
            InvalidArgumentError: If the key contains the separator
        """
        if not isinstance(message, Message):
            raise TypeError(f"expected Message, got {type(message).__name__}")
        if self.separator in message.key:
            raise InvalidArgumentError(
                f"message key {message.key!r} contains separator {self.separator!r}"
            )
        return message.key + self.separator + message.value

    def decode(self, line: bytes) -> Message:
        """Parse one line (newline already stripped).

        Raises:
            DecodeError: If the line has no separator
        """
        key, sep, value = line.partition(self.separator)
        if not sep:
            raise DecodeError(line, f"missing separator {self.separator!r} in line")
        return Message(key=key, value=value)
