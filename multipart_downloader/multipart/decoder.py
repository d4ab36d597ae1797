"""Part decoder state machine.

The decoder never reads or writes on its own. It names the next ``Read`` it
needs via ``request``, and ``handle`` turns the matching ``Frame`` into the
``FileOp`` list a writer has to carry out. The blocking and the suspending
sessions drive the same machine with their own reader and writer.

Wire layout handled here, for boundary ``B``::

    preamble B \\r\\n <headers> \\r\\n\\r\\n <body> \\r\\n--B \\r\\n <headers> ... \\r\\n--B--\\r\\n

The boundary is matched verbatim, so every body is followed by ``\\r\\n--``
plus the boundary. That fixed ``len(B) + 4`` trailer is trimmed from each body.
"""

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.multipart.errors import HeaderMalformedError, StreamError
from multipart_downloader.multipart.headers import extract_filename
from multipart_downloader.multipart.paths import PathResolver
from multipart_downloader.multipart.reader import Frame, FrameBuffer, FrameKind, Read
from multipart_downloader.multipart.settings import DownloadSettings

HEADER_SEPARATOR = b"\r\n\r\n"
BOUNDARY_PREFIX = b"\r\n--"
TERMINATOR = b"--"


class DecoderState(StrEnum):
    AWAITING_FIRST_BOUNDARY = "awaiting_first_boundary"
    READING_HEADER = "reading_header"
    BODY_OPEN = "body_open"
    AWAITING_TRAILER = "awaiting_trailer"
    DONE = "done"
    ERROR = "error"


class FileAction(StrEnum):
    OPEN = "open"
    WRITE = "write"
    CLOSE = "close"


@dataclass(slots=True)
class Part:
    """A destination file, from header to close."""

    file_name: str
    path: Path
    generated: bool
    handle: Any = None
    written: int = 0

    @property
    def open_mode(self) -> str:
        # Generated names must not clobber a file created since the probe.
        return "xb" if self.generated else "wb"


@dataclass(slots=True, frozen=True)
class FileOp:
    action: FileAction
    part: Part
    data: bytes = b""


class PartDecoder:
    """Drives boundary -> header -> body (-> body ...) -> header | terminator.

    A writer reports back through ``opened`` and ``closed`` once it has
    performed the matching operation; only then does the part count as open
    or complete.
    """

    def __init__(self, boundary: bytes, buffer: FrameBuffer, settings: DownloadSettings) -> None:
        self.boundary = boundary
        self.buffer = buffer
        self.settings = settings
        self.resolver = PathResolver(settings.output_directory, settings.on_header)
        self.state = DecoderState.AWAITING_FIRST_BOUNDARY
        self.paths: list[Path] = []
        self.part: Part | None = None
        # Bytes held back from every body write: CRLF, "--" and the boundary.
        self.reserve = len(BOUNDARY_PREFIX) + len(boundary)

    @property
    def finished(self) -> bool:
        return self.state in (DecoderState.DONE, DecoderState.ERROR)

    @property
    def request(self) -> Read:
        match self.state:
            case DecoderState.AWAITING_FIRST_BOUNDARY | DecoderState.BODY_OPEN:
                return Read.until(self.boundary)
            case DecoderState.READING_HEADER:
                return Read.until(HEADER_SEPARATOR)
            case DecoderState.AWAITING_TRAILER:
                return Read.at_least(len(TERMINATOR))
            case _:
                raise RuntimeError(f"decoder is {self.state}, nothing left to read")

    def handle(self, frame: Frame) -> list[FileOp]:
        match self.state:
            case DecoderState.AWAITING_FIRST_BOUNDARY:
                return self._on_first_boundary(frame)
            case DecoderState.READING_HEADER:
                return self._on_header(frame)
            case DecoderState.BODY_OPEN:
                return self._on_body(frame)
            case DecoderState.AWAITING_TRAILER:
                return self._on_trailer(frame)
            case _:
                raise RuntimeError(f"decoder is {self.state}, cannot handle {frame.kind}")

    def opened(self, part: Part) -> None:
        self.part = part
        self.paths.append(part.path)
        logger.info("Receiving file", icon=LogIcon.DOWNLOAD, file_name=part.file_name, path=part.path)

    def closed(self, part: Part) -> None:
        self.part = None
        logger.info("File received", icon=LogIcon.SUCCESS, path=part.path, size=part.written)
        if self.settings.on_body_complete is not None:
            self.settings.on_body_complete(part.path)

    def abort(self) -> Part | None:
        """Stop the machine and hand back the part in flight, its path dropped."""
        self.state = DecoderState.ERROR
        part, self.part = self.part, None
        if part is not None and self.paths and self.paths[-1] == part.path:
            self.paths.pop()
        return part

    # -------------------------------------------------------------------------
    # States
    # -------------------------------------------------------------------------

    def _on_first_boundary(self, frame: Frame) -> list[FileOp]:
        if frame.kind is not FrameKind.DELIMITED:
            raise HeaderMalformedError(f"no boundary within the first {frame.size} bytes ({frame.kind})")
        self.buffer.consume(frame.size)
        self.state = DecoderState.READING_HEADER
        return []

    def _on_header(self, frame: Frame) -> list[FileOp]:
        if frame.kind is not FrameKind.DELIMITED:
            raise HeaderMalformedError(f"part header not terminated ({frame.kind})")

        file_name = extract_filename(self.buffer.peek(frame.size))
        path, generated = self.resolver.resolve(file_name)
        self.buffer.consume(frame.size)
        self.state = DecoderState.BODY_OPEN
        return [FileOp(FileAction.OPEN, Part(file_name=file_name, path=path, generated=generated))]

    def _on_body(self, frame: Frame) -> list[FileOp]:
        part = self._open_part()
        match frame.kind:
            case FrameKind.CAP_REACHED:
                flushed = frame.size - self.reserve
                logger.debug("Flushing packet", icon=LogIcon.STREAMING, size=flushed)
                return [FileOp(FileAction.WRITE, part, self.buffer.take(flushed))]
            case FrameKind.DELIMITED:
                body_size = frame.size - self.reserve
                if body_size < 0 or self.buffer.peek(len(BOUNDARY_PREFIX), body_size) != BOUNDARY_PREFIX:
                    raise HeaderMalformedError("boundary is not preceded by CRLF and '--'")
                data = self.buffer.take(body_size)
                self.buffer.consume(self.reserve)
                self.state = DecoderState.AWAITING_TRAILER
                return [FileOp(FileAction.WRITE, part, data), FileOp(FileAction.CLOSE, part)]
            case _:
                raise StreamError("stream ended inside a part body")

    def _on_trailer(self, frame: Frame) -> list[FileOp]:
        if frame.kind is FrameKind.FILLED and self.buffer.peek(len(TERMINATOR)) == TERMINATOR:
            self.state = DecoderState.DONE
        else:
            self.state = DecoderState.READING_HEADER
        return []

    def _open_part(self) -> Part:
        if self.part is None:
            raise RuntimeError("body frame received before its file was opened")
        return self.part
