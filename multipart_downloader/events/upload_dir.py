"""Upload directory lifespan event."""

from pathlib import Path

from multipart_downloader.core.lifespan import BaseEvent
from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.settings import settings as st


class UploadDirectoryEvent(BaseEvent[Path]):
    """Creates the directory uploads are written to."""

    name = "upload_dir"

    async def startup(self) -> Path:
        upload_dir = st.UPLOAD_DIR.resolve()
        upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Upload directory ready", icon=LogIcon.FOLDER, path=str(upload_dir))
        return upload_dir
