"""Destination path resolution for uploaded parts."""

from itertools import count
from pathlib import Path, PurePosixPath, PureWindowsPath

from pathvalidate import sanitize_filename

from multipart_downloader.multipart.errors import HeaderMalformedError, PathResolutionError
from multipart_downloader.multipart.settings import HeaderHook


def safe_file_name(file_name: str) -> str:
    """Reduce a client supplied name to a single, portable path component."""
    base = PureWindowsPath(PurePosixPath(file_name).name).name
    cleaned = sanitize_filename(base, platform="auto") if base not in (".", "..") else ""
    if cleaned in ("", ".", ".."):
        raise HeaderMalformedError(f"unusable filename {file_name!r}")
    return cleaned


def numbered(path: Path, number: int) -> Path:
    """``name.ext`` -> ``name(number).ext``."""
    return path.with_name(f"{path.stem}({number}){path.suffix}")


class PathResolver:
    """Maps header file names to output paths.

    A path returned by ``on_header`` is used as is. Otherwise the name is placed
    under ``output_directory`` with a ``(n)`` suffix when the file already exists.
    """

    def __init__(self, output_directory: Path, on_header: HeaderHook | None = None) -> None:
        self.output_directory = Path(output_directory)
        self.on_header = on_header

    def resolve(self, file_name: str) -> tuple[Path, bool]:
        """Return the destination and whether it was generated here."""
        if self.on_header is not None:
            chosen = self.on_header(file_name)
            if chosen:
                return Path(chosen), False
        return self.deduplicate(self.output_directory / safe_file_name(file_name)), True

    def deduplicate(self, candidate: Path) -> Path:
        path = candidate
        numbers = count(1)
        try:
            while path.exists():
                path = numbered(candidate, next(numbers))
        except (OSError, ValueError) as ex:
            raise PathResolutionError(f"cannot probe {path}: {ex}") from ex
        return path
