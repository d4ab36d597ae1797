"""Error kinds raised by the multipart downloader."""

from enum import StrEnum
from pathlib import Path


class ErrorKind(StrEnum):
    """Failure categories surfaced by a download session."""

    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    BOUNDARY_MISSING = "BOUNDARY_MISSING"
    HEADER_MALFORMED = "HEADER_MALFORMED"
    CANNOT_OPEN_DESTINATION = "CANNOT_OPEN_DESTINATION"
    PATH_RESOLUTION_FAILED = "PATH_RESOLUTION_FAILED"
    STREAM_ERROR = "STREAM_ERROR"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"


class DownloadError(Exception):
    """Base error for a failed download.

    ``paths`` holds the files that were fully written before the failure,
    in the order their parts appeared in the body.
    """

    kind: ErrorKind

    def __init__(self, message: str, paths: list[Path] | None = None) -> None:
        super().__init__(message)
        self.paths: list[Path] = list(paths or [])

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"


class InvalidContentTypeError(DownloadError):
    kind = ErrorKind.INVALID_CONTENT_TYPE


class BoundaryMissingError(DownloadError):
    kind = ErrorKind.BOUNDARY_MISSING


class HeaderMalformedError(DownloadError):
    kind = ErrorKind.HEADER_MALFORMED


class CannotOpenDestinationError(DownloadError):
    kind = ErrorKind.CANNOT_OPEN_DESTINATION


class PathResolutionError(DownloadError):
    kind = ErrorKind.PATH_RESOLUTION_FAILED


class StreamError(DownloadError):
    kind = ErrorKind.STREAM_ERROR


class OperationTimeoutError(DownloadError):
    kind = ErrorKind.OPERATION_TIMEOUT
