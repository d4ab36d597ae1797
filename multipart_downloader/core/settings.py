"""Unified settings for multipart-downloader."""

import tomllib
from datetime import timedelta
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from multipart_downloader.multipart.settings import DEFAULT_PACKET_SIZE, DownloadSettings


def read_pyproject(pyproject_path: Path) -> dict:
    """Read pyproject.toml into a dict, empty when the file is not shipped."""
    if not pyproject_path.is_file():
        return {}
    with pyproject_path.open("rb") as file_handle:
        return tomllib.load(file_handle)


def get_version(base_dir: Path) -> str:
    """Get version from git tags or fallback to package metadata."""
    try:
        import git

        repo = git.Repo(base_dir, search_parent_directories=True)
        latest_tag = max(repo.tags, key=lambda t: t.commit.committed_datetime, default=None)
        return str(latest_tag) if latest_tag else "0.0.0"
    except Exception:
        try:
            import importlib.metadata

            return importlib.metadata.version("multipart-downloader")
        except Exception:
            return "0.0.0"


class Settings(BaseSettings):
    """Unified settings for the multipart-downloader service."""

    DEBUG: bool = True
    ENVIRONMENT: Literal["DEV", "PROD"] = "DEV"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    BASE_DIR: ClassVar[Path] = Path(__file__).parent.parent.parent
    PROJECT: ClassVar[dict] = read_pyproject(BASE_DIR / "pyproject.toml")
    API_NAME: ClassVar[str] = PROJECT.get("project", {}).get("name", "multipart-downloader")
    API_DESCRIPTION: ClassVar[str] = PROJECT.get("project", {}).get(
        "description", "Streaming multipart/form-data downloader"
    )
    API_VERSION: ClassVar[str] = get_version(BASE_DIR)

    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Uploads
    UPLOAD_DIR: Path = Path("uploads")
    PACKET_SIZE: int = Field(default=DEFAULT_PACKET_SIZE, gt=0)
    OPERATION_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    # Workers running blocking downloads
    MAX_WORKERS: int = 4

    @property
    def api_url(self) -> str:
        return f"http://{self.API_HOST}:{self.API_PORT}"

    def download_settings(self, **overrides) -> DownloadSettings:
        """Decoder settings derived from the service configuration."""
        values = {
            "packet_size": self.PACKET_SIZE,
            "operation_timeout": timedelta(seconds=self.OPERATION_TIMEOUT_SECONDS),
            "output_directory": self.UPLOAD_DIR,
        }
        return DownloadSettings(**(values | overrides))

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()  # type: ignore
