"""Download session: runs the part decoder to completion, blocking or suspending."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.multipart.decoder import PartDecoder
from multipart_downloader.multipart.errors import DownloadError, OperationTimeoutError, StreamError
from multipart_downloader.multipart.headers import parse_boundary
from multipart_downloader.multipart.reader import (
    AsyncByteSource,
    AsyncFrameReader,
    ByteSource,
    FrameBuffer,
    FrameReader,
)
from multipart_downloader.multipart.settings import DownloadSettings
from multipart_downloader.multipart.writers import AsyncFileWriter, FileWriter


@contextmanager
def source_errors() -> Iterator[None]:
    """Translate failures of the underlying byte source into download errors."""
    try:
        yield
    except TimeoutError as ex:
        raise OperationTimeoutError(f"read timed out: {ex}") from ex
    except OSError as ex:
        raise StreamError(f"read failed: {ex}") from ex


class Downloader:
    """Decodes a multipart/form-data body from ``source`` into files.

    ``buffer`` holds body bytes the caller already read past the request
    headers; they are decoded before anything is pulled from ``source``.
    One instance runs one decode at a time. Call ``reset`` with a fresh source
    before reusing it for another request.
    """

    def __init__(self, source: ByteSource | AsyncByteSource, buffer: bytes = b"") -> None:
        self.source = source
        self.paths: list[Path] = []
        self._seed = bytes(buffer)
        self._running = False

    def reset(self, source: ByteSource | AsyncByteSource | None = None, buffer: bytes = b"") -> None:
        if source is not None:
            self.source = source
        self._seed = bytes(buffer)
        self.paths = []

    def download(self, content_type: str, settings: DownloadSettings | None = None) -> list[Path]:
        """Blocking mode: decode the whole body on the calling thread."""
        decoder = self._prepare(content_type, settings or DownloadSettings())
        reader = FrameReader(self.source, decoder.buffer)  # type: ignore[arg-type]
        writer = FileWriter()

        with self._session(decoder):
            try:
                while not decoder.finished:
                    with source_errors():
                        frame = reader.fulfil(decoder.request)
                    writer.apply(decoder, decoder.handle(frame))
            except BaseException:
                writer.discard(decoder.abort())
                raise
        return self.paths

    async def download_async(self, content_type: str, settings: DownloadSettings | None = None) -> list[Path]:
        """Suspending mode: same decode, awaiting each read and each file operation."""
        decoder = self._prepare(content_type, settings or DownloadSettings())
        reader = AsyncFrameReader(self.source, decoder.buffer)  # type: ignore[arg-type]
        writer = AsyncFileWriter()

        with self._session(decoder):
            try:
                while not decoder.finished:
                    with source_errors():
                        frame = await reader.fulfil(decoder.request)
                    await writer.apply(decoder, decoder.handle(frame))
            except BaseException:
                await writer.discard(decoder.abort())
                raise
        return self.paths

    def _prepare(self, content_type: str, settings: DownloadSettings) -> PartDecoder:
        if self._running:
            raise RuntimeError("a download is already running on this session")
        self.paths = []

        boundary = parse_boundary(content_type)
        buffer = FrameBuffer(settings.packet_size, self._seed)
        decoder = PartDecoder(boundary, buffer, settings)
        if settings.packet_size <= decoder.reserve:
            raise ValueError(f"packet_size {settings.packet_size} cannot hold a {len(boundary)} byte boundary")
        return decoder

    @contextmanager
    def _session(self, decoder: PartDecoder) -> Iterator[None]:
        self._running = True
        logger.info(
            "Download started",
            icon=LogIcon.START,
            boundary=decoder.boundary.decode(errors="replace"),
            packet_size=decoder.buffer.capacity,
        )
        try:
            yield
        except DownloadError as ex:
            ex.paths = list(decoder.paths)
            logger.error("Download failed", icon=LogIcon.ERROR, kind=ex.kind, completed=len(ex.paths))
            raise
        finally:
            self.paths = list(decoder.paths)
            self._running = False
        logger.info("Download complete", icon=LogIcon.COMPLETE, files=len(self.paths))


def download_stream(
    source: ByteSource,
    content_type: str,
    settings: DownloadSettings | None = None,
    buffer: bytes = b"",
) -> list[Path]:
    """Decode one body from a blocking source."""
    return Downloader(source, buffer).download(content_type, settings)


async def download_stream_async(
    source: AsyncByteSource,
    content_type: str,
    settings: DownloadSettings | None = None,
    buffer: bytes = b"",
) -> list[Path]:
    """Decode one body from an awaitable source."""
    return await Downloader(source, buffer).download_async(content_type, settings)
