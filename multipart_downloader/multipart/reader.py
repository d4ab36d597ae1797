"""Bounded frame reading over a byte source.

``FrameBuffer`` holds the scanning logic and performs no I/O. ``FrameReader``
and ``AsyncFrameReader`` pull from a blocking or awaitable source until the
buffer can answer a ``Read`` request. Those pulls are the only points where a
download can block or suspend.
"""

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class ByteSource(Protocol):
    def read(self, size: int, /) -> bytes: ...


class AsyncByteSource(Protocol):
    def read(self, size: int, /) -> Awaitable[bytes]: ...


class FrameKind(StrEnum):
    """Outcome of a bounded read."""

    DELIMITED = "delimited"
    FILLED = "filled"
    CAP_REACHED = "cap_reached"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class Frame:
    kind: FrameKind
    # Bytes covered by the frame, delimiter included for DELIMITED frames.
    size: int

    @property
    def found(self) -> bool:
        return self.kind in (FrameKind.DELIMITED, FrameKind.FILLED)


@dataclass(frozen=True, slots=True)
class Read:
    """What a reader must produce next: a delimited frame or a minimum fill."""

    delimiter: bytes = b""
    min_size: int = 0

    @classmethod
    def until(cls, delimiter: bytes) -> "Read":
        return cls(delimiter=delimiter)

    @classmethod
    def at_least(cls, size: int) -> "Read":
        return cls(min_size=size)


class FrameBuffer:
    """Growable receive buffer capped at ``capacity`` bytes."""

    __slots__ = ("_data", "_capacity", "_scanned", "_scan_delimiter", "_exhausted")

    def __init__(self, capacity: int, seed: bytes = b"") -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._data = bytearray(seed)
        self._capacity = capacity
        # Prefix of _data already searched for _scan_delimiter.
        self._scanned = 0
        self._scan_delimiter = b""
        self._exhausted = False

    def __len__(self) -> int:
        return len(self._data)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def wanted(self) -> int:
        """Largest read that keeps the buffer within capacity."""
        return max(self._capacity - len(self._data), 0)

    def take(self, size: int) -> bytes:
        """Remove and return the first ``size`` bytes."""
        chunk = bytes(self._data[:size])
        self.consume(size)
        return chunk

    def peek(self, size: int, offset: int = 0) -> bytes:
        return bytes(self._data[offset : offset + size])

    def feed(self, data: bytes) -> None:
        """Append freshly read bytes; an empty chunk marks end of stream."""
        if not data:
            self._exhausted = True
            return
        self._data += data

    def consume(self, size: int) -> None:
        del self._data[:size]
        self._scanned = 0

    def match(self, request: Read) -> Frame | None:
        """Answer ``request`` from buffered bytes, or None when more input is needed."""
        if request.delimiter:
            return self._match_delimiter(request.delimiter)
        if len(self._data) >= request.min_size:
            return Frame(FrameKind.FILLED, len(self._data))
        if self._exhausted:
            return Frame(FrameKind.EXHAUSTED, len(self._data))
        return None

    def _match_delimiter(self, delimiter: bytes) -> Frame | None:
        if delimiter != self._scan_delimiter:
            self._scan_delimiter = delimiter
            self._scanned = 0
        start = max(self._scanned - len(delimiter) + 1, 0)
        position = self._data.find(delimiter, start)
        if position >= 0:
            self._scanned = 0
            return Frame(FrameKind.DELIMITED, position + len(delimiter))
        self._scanned = len(self._data)
        if len(self._data) >= self._capacity:
            return Frame(FrameKind.CAP_REACHED, len(self._data))
        if self._exhausted:
            return Frame(FrameKind.EXHAUSTED, len(self._data))
        return None


class FrameReader:
    """Blocking reader: each pull is a direct ``source.read`` call."""

    def __init__(self, source: ByteSource, buffer: FrameBuffer) -> None:
        self.source = source
        self.buffer = buffer

    def fulfil(self, request: Read) -> Frame:
        while (frame := self.buffer.match(request)) is None:
            self.buffer.feed(self.source.read(self.buffer.wanted))
        return frame

    def read_until(self, delimiter: bytes) -> Frame:
        return self.fulfil(Read.until(delimiter))

    def read_at_least(self, size: int) -> Frame:
        return self.fulfil(Read.at_least(size))


class AsyncFrameReader:
    """Suspending reader: each pull awaits ``source.read``."""

    def __init__(self, source: AsyncByteSource, buffer: FrameBuffer) -> None:
        self.source = source
        self.buffer = buffer

    async def fulfil(self, request: Read) -> Frame:
        while (frame := self.buffer.match(request)) is None:
            self.buffer.feed(await self.source.read(self.buffer.wanted))
        return frame

    async def read_until(self, delimiter: bytes) -> Frame:
        return await self.fulfil(Read.until(delimiter))

    async def read_at_least(self, size: int) -> Frame:
        return await self.fulfil(Read.at_least(size))
