"""A small chat application whose state is the delivered message history."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from typing import Any, TextIO

_MESSAGES_FIELD = 1
_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_BYTES = 2
_WIRE_FIXED32 = 5


def _encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ValueError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift >= 64:
            raise ValueError("varint too long")


def _encode_state(messages: list[str]) -> bytes:
    out = bytearray()
    tag = _encode_varint((_MESSAGES_FIELD << 3) | _WIRE_BYTES)
    for message in messages:
        encoded = message.encode("utf-8")
        out += tag + _encode_varint(len(encoded)) + encoded
    return bytes(out)


def _decode_state(data: bytes) -> Iterator[str]:
    pos = 0
    while pos < len(data):
        key, pos = _decode_varint(data, pos)
        number, wire = key >> 3, key & 0x7
        if number == 0:
            raise ValueError("invalid field number 0")
        if wire == _WIRE_VARINT:
            _, pos = _decode_varint(data, pos)
            value = None
        elif wire == _WIRE_FIXED64:
            pos += 8
            value = None
        elif wire == _WIRE_FIXED32:
            pos += 4
            value = None
        elif wire == _WIRE_BYTES:
            length, pos = _decode_varint(data, pos)
            value = data[pos : pos + length]
            pos += length
        else:
            raise ValueError(f"unsupported wire type {wire}")
        if pos > len(data):
            raise ValueError("truncated field")
        if number == _MESSAGES_FIELD:
            if value is None:
                raise ValueError("wrong wire type for messages field")
            try:
                yield value.decode("utf-8")
            except UnicodeDecodeError as err:
                raise ValueError("messages field is not valid UTF-8") from err


class ChatApp:
    """Appends the payload of every delivered request to a chat history.

    ``req_store`` must provide ``get_request(ref)`` returning the request data.
    Messages are printed to ``out`` (standard output by default).
    """

    def __init__(self, req_store: Any, out: TextIO | None = None) -> None:
        self._req_store = req_store
        self._out = out
        self._messages: list[str] = []

    @property
    def messages(self) -> list[str]:
        """A copy of the chat history."""
        return list(self._messages)

    def _print(self, text: str) -> None:
        print(text, file=self._out if self._out is not None else sys.stdout)

    def apply(self, batch: Any) -> None:
        """Append one chat message per request in ``batch`` and print it."""
        for ref in batch.requests:
            data = self._req_store.get_request(ref)
            message = f"Client {ref.client_id}: {data.decode('utf-8', errors='replace')}"
            self._messages.append(message)
            self._print(message)

    def snapshot(self) -> bytes:
        """Serialise the chat history."""
        return _encode_state(self._messages)

    def restore_state(self, snapshot: bytes) -> None:
        """Replace the history with the one in ``snapshot`` and print it all."""
        messages = list(_decode_state(snapshot))
        self._messages = messages
        self._print(
            "\n CHAT STATE RESTORED. SHOWING ALL CHAT HISTORY FROM THE BEGINNING.\n"
        )
        for message in messages:
            self._print(message)