"""Byte source adapters for the caller side of a download.

The decoder only needs ``read(size)`` returning at most ``size`` bytes and
``b""`` at end of stream. ``io.BytesIO``, buffered files, ``socket.makefile``
and ``asyncio.StreamReader`` already qualify; these cover the rest.
"""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from datetime import timedelta

from multipart_downloader.multipart.reader import AsyncByteSource


class ChunkedSource:
    """Blocking source over an iterable of byte chunks of any size."""

    __slots__ = ("_chunks", "_pending")

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""

    def read(self, size: int, /) -> bytes:
        while not self._pending:
            chunk = next(self._chunks, None)
            if chunk is None:
                return b""
            self._pending = bytes(chunk)
        data, self._pending = self._pending[:size], self._pending[size:]
        return data


class AsyncChunkedSource:
    """Awaitable source over an async iterable of byte chunks."""

    __slots__ = ("_chunks", "_pending")

    def __init__(self, chunks: AsyncIterable[bytes] | Iterable[bytes]) -> None:
        self._chunks: AsyncIterator[bytes] | Iterator[bytes]
        if isinstance(chunks, AsyncIterable):
            self._chunks = aiter(chunks)
        else:
            self._chunks = iter(chunks)
        self._pending = b""

    async def _next_chunk(self) -> bytes | None:
        if isinstance(self._chunks, AsyncIterator):
            return await anext(self._chunks, None)
        return next(self._chunks, None)

    async def read(self, size: int, /) -> bytes:
        while not self._pending:
            chunk = await self._next_chunk()
            if chunk is None:
                return b""
            self._pending = bytes(chunk)
        data, self._pending = self._pending[:size], self._pending[size:]
        return data


class TimeoutSource:
    """Bounds every read of an awaitable source by ``timeout``.

    An expired read raises ``TimeoutError``, which the session reports as
    ``OperationTimeoutError``.
    """

    __slots__ = ("source", "timeout")

    def __init__(self, source: AsyncByteSource, timeout: timedelta | float) -> None:
        self.source = source
        self.timeout = timeout.total_seconds() if isinstance(timeout, timedelta) else float(timeout)

    async def read(self, size: int, /) -> bytes:
        async with asyncio.timeout(self.timeout):
            return await self.source.read(size)
