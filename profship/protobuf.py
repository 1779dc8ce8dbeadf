"""A minimal protocol buffer encoder for building pprof profiles."""

from __future__ import annotations

from typing import Iterable

_UINT64_MASK = (1 << 64) - 1


def _append_varint(buf: bytearray, x: int) -> None:
    x &= _UINT64_MASK
    while x >= 0x80:
        buf.append((x & 0x7F) | 0x80)
        x >>= 7
    buf.append(x)


class ProtobufEncoder:
    """Appends protobuf fields to ``data``.

    Nested messages are opened with :meth:`start_message` and closed with
    :meth:`end_message`, which prefixes the message body with its tag and
    length. ``nest`` counts the messages currently open.
    """

    def __init__(self) -> None:
        self.data = bytearray()
        self.nest = 0

    def varint(self, x: int) -> None:
        """Append ``x`` as an unsigned 64-bit varint."""
        _append_varint(self.data, x)

    def length(self, tag: int, n: int) -> None:
        """Append a length-delimited field header."""
        self.varint(tag << 3 | 2)
        self.varint(n)

    def uint64(self, tag: int, x: int) -> None:
        self.varint(tag << 3)
        self.varint(x)

    def uint64s(self, tag: int, xs: Iterable[int]) -> None:
        """Append repeated values; more than two are written packed."""
        values = list(xs)
        if len(values) > 2:
            payload = bytearray()
            for value in values:
                _append_varint(payload, value)
            self.length(tag, len(payload))
            self.data += payload
            return
        for value in values:
            self.uint64(tag, value)

    def uint64_opt(self, tag: int, x: int) -> None:
        if x == 0:
            return
        self.uint64(tag, x)

    def int64(self, tag: int, x: int) -> None:
        self.uint64(tag, x & _UINT64_MASK)

    def int64_opt(self, tag: int, x: int) -> None:
        if x == 0:
            return
        self.int64(tag, x)

    def int64s(self, tag: int, xs: Iterable[int]) -> None:
        self.uint64s(tag, [x & _UINT64_MASK for x in xs])

    def string(self, tag: int, s: str | bytes) -> None:
        raw = s.encode("utf-8") if isinstance(s, str) else bytes(s)
        self.length(tag, len(raw))
        self.data += raw

    def strings(self, tag: int, xs: Iterable[str | bytes]) -> None:
        for s in xs:
            self.string(tag, s)

    def string_opt(self, tag: int, s: str | bytes) -> None:
        if not s:
            return
        self.string(tag, s)

    def bool(self, tag: int, x: object) -> None:
        self.uint64(tag, 1 if x else 0)

    def bool_opt(self, tag: int, x: object) -> None:
        if not x:
            return
        self.bool(tag, x)

    def start_message(self) -> int:
        """Open a nested message and return its start offset."""
        self.nest += 1
        return len(self.data)

    def end_message(self, tag: int, start: int) -> None:
        """Close the message opened at ``start`` under field ``tag``."""
        body = bytes(self.data[start:])
        del self.data[start:]
        self.length(tag, len(body))
        self.data += body
        self.nest -= 1