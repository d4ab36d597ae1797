"""Destination file writers: carry out the decoder's ``FileOp`` lists.

``FileWriter`` uses blocking calls and backs the blocking session.
``AsyncFileWriter`` goes through ``aiofiles`` so that opening, writing and
closing run on worker threads and never stall the event loop.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import aiofiles
import aiofiles.os

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.multipart.decoder import FileAction, FileOp, Part, PartDecoder
from multipart_downloader.multipart.errors import CannotOpenDestinationError


@contextmanager
def destination_errors(action: str, path: Path) -> Iterator[None]:
    """Translate failures of the destination file into download errors."""
    try:
        yield
    except OSError as ex:
        raise CannotOpenDestinationError(f"cannot {action} {path}: {ex}") from ex


def log_rollback_failure(action: str, part: Part, ex: OSError) -> None:
    logger.warning(f"Could not {action} partial file", icon=LogIcon.WARNING, path=part.path, error=str(ex))


def log_rollback(part: Part) -> None:
    logger.warning("Rolled back partial file", icon=LogIcon.RECOVERY, path=part.path, written=part.written)


class FileWriter:
    """Blocking writer."""

    def apply(self, decoder: PartDecoder, ops: list[FileOp]) -> None:
        for op in ops:
            part = op.part
            match op.action:
                case FileAction.OPEN:
                    with destination_errors("open", part.path):
                        part.handle = part.path.open(part.open_mode)
                    decoder.opened(part)
                case FileAction.WRITE:
                    with destination_errors("write", part.path):
                        part.handle.write(op.data)
                    part.written += len(op.data)
                case FileAction.CLOSE:
                    with destination_errors("finish", part.path):
                        part.handle.close()
                    decoder.closed(part)

    def discard(self, part: Part | None) -> None:
        """Close and delete a part that will not be completed, best effort."""
        if part is None:
            return
        try:
            part.handle.close()
        except OSError as ex:
            log_rollback_failure("close", part, ex)
        try:
            part.path.unlink(missing_ok=True)
        except OSError as ex:
            log_rollback_failure("delete", part, ex)
        log_rollback(part)


class AsyncFileWriter:
    """Suspending writer, every file call awaited through aiofiles."""

    async def apply(self, decoder: PartDecoder, ops: list[FileOp]) -> None:
        for op in ops:
            part = op.part
            match op.action:
                case FileAction.OPEN:
                    with destination_errors("open", part.path):
                        part.handle = await aiofiles.open(part.path, part.open_mode)
                    decoder.opened(part)
                case FileAction.WRITE:
                    with destination_errors("write", part.path):
                        await part.handle.write(op.data)
                    part.written += len(op.data)
                case FileAction.CLOSE:
                    with destination_errors("finish", part.path):
                        await part.handle.close()
                    decoder.closed(part)

    async def discard(self, part: Part | None) -> None:
        """Close and delete a part that will not be completed, best effort."""
        if part is None:
            return
        try:
            await part.handle.close()
        except OSError as ex:
            log_rollback_failure("close", part, ex)
        try:
            await aiofiles.os.remove(part.path)
        except FileNotFoundError:
            logger.debug("Partial file already gone", icon=LogIcon.RECOVERY, path=part.path)
        except OSError as ex:
            log_rollback_failure("delete", part, ex)
        log_rollback(part)
