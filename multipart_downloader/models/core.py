"""Core models for upload request/response handling."""

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel


class DownloadMode(StrEnum):
    """How an upload endpoint drives the multipart decoder."""

    SUSPENDING = "suspending"
    BLOCKING = "blocking"


class UploadedFiles:
    """Files written from a multipart/form-data request, in body order."""

    __slots__ = ("paths",)

    def __init__(self, paths: list[Path] | None = None) -> None:
        self.paths = list(paths or [])

    def __bool__(self) -> bool:
        return bool(self.paths)

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self):
        return iter(self.paths)

    def names(self) -> list[str]:
        return [path.name for path in self.paths]


class UploadedFileInfo(BaseModel):
    name: str
    path: str
    size: int

    @classmethod
    def from_path(cls, path: Path) -> "UploadedFileInfo":
        return cls(name=path.name, path=str(path), size=path.stat().st_size)


class UploadResponse(BaseModel):
    files: list[UploadedFileInfo]


class UploadErrorResponse(BaseModel):
    error: str
    detail: str
    files: list[str]
