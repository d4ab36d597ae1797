"""multipart-downloader service: streams multipart/form-data uploads straight to disk."""

from robyn import Robyn

from multipart_downloader.api.files import router as files_router
from multipart_downloader.api.health import router as health_router
from multipart_downloader.core.lifespan import create_lifespan
from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.settings import settings as st
from multipart_downloader.events.upload_dir import UploadDirectoryEvent
from multipart_downloader.events.worker_pool import WorkerPoolEvent

app = Robyn(__file__)

# Started in order, stopped in reverse
lifespan = create_lifespan(app).register(UploadDirectoryEvent).register(WorkerPoolEvent)
app.startup_handler(lifespan.startup)
app.shutdown_handler(lifespan.shutdown)

for router in (health_router, files_router):
    app.include_router(router)


def main() -> None:
    logger.info(
        "Starting service",
        icon=LogIcon.START,
        url=st.api_url,
        upload_dir=st.UPLOAD_DIR,
        packet_size=st.PACKET_SIZE,
    )
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()
