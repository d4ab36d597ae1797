"""Thread pool running blocking-mode downloads."""

from concurrent.futures import ThreadPoolExecutor

from multipart_downloader.core.lifespan import BaseEvent
from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.settings import settings as st


def create_worker_pool(max_workers: int | None = None) -> ThreadPoolExecutor:
    """One worker thread per in-flight blocking download."""
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="download")


class WorkerPoolEvent(BaseEvent[ThreadPoolExecutor]):
    """Manages the ThreadPoolExecutor lifecycle."""

    name = "worker_pool"

    async def startup(self) -> ThreadPoolExecutor:
        logger.info("Starting download workers", icon=LogIcon.WORKER, max_workers=st.MAX_WORKERS)
        return create_worker_pool(max_workers=st.MAX_WORKERS or None)

    async def shutdown(self, instance: ThreadPoolExecutor) -> None:
        instance.shutdown(wait=True, cancel_futures=True)
