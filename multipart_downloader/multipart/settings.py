"""Per-session settings for the multipart downloader."""

from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PACKET_SIZE = 10 * 1024 * 1024
DEFAULT_OPERATION_TIMEOUT = timedelta(seconds=30)

HeaderHook = Callable[[str], Path | str | None]
BodyCompleteHook = Callable[[Path], None]


class DownloadSettings(BaseModel):
    """Settings applied to one download call.

    ``operation_timeout`` is advisory: the byte source is expected to enforce it
    and raise ``TimeoutError`` from the read that expired.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    # Size of the frame buffer, which is also the largest single read.
    packet_size: int = Field(default=DEFAULT_PACKET_SIZE, gt=0)
    operation_timeout: timedelta = DEFAULT_OPERATION_TIMEOUT
    output_directory: Path = Path(".")
    on_header: HeaderHook | None = None
    on_body_complete: BodyCompleteHook | None = None
