"""Upload endpoints, one per download mode."""

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.router import Router
from multipart_downloader.models.core import DownloadMode, UploadedFileInfo, UploadedFiles, UploadResponse

router = Router(__file__, prefix="/files")


def describe(files: UploadedFiles) -> UploadResponse:
    logger.info("Upload stored", icon=LogIcon.FILE, files=files.names())
    return UploadResponse(files=[UploadedFileInfo.from_path(path) for path in files])


@router.post("/upload")
async def upload(files: UploadedFiles) -> UploadResponse:
    """Stream the body to disk, suspending on each read."""
    return describe(files)


@router.post("/upload/blocking", mode=DownloadMode.BLOCKING)
async def upload_blocking(files: UploadedFiles) -> UploadResponse:
    """Stream the body to disk on a worker thread."""
    return describe(files)
