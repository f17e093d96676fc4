"""Configuration loader for the novel sync application."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AppInfo(BaseModel):
    """Application metadata."""

    name: str = "Novel Sync"
    version: str = "1.0.0"
    language: str = "zh"


class ChunkingConfig(BaseModel):
    """Chunk assembly configuration.

    ``chunk_size`` is a character budget for the chapter content of one chunk.
    """

    chunk_size: int = 40000
    include_toc: bool = False
    primary_series: str = "official"


class JobsConfig(BaseModel):
    """Chunk build job configuration."""

    poll_interval_seconds: float = 2.0
    build_timeout_seconds: float = 600.0
    max_workers: int = 2


class RemoteConfig(BaseModel):
    """Remote note store (Joplin Data API) configuration."""

    api_url: str = "http://localhost:41184"
    root_folder: str = "Books"
    recycle_folder: str = "Recycle Bin"
    unknown_author: str = "未知作者"
    request_timeout: float = 30.0
    max_retries: int = 3


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    sqlite_path: str = "./db/app.db"
    books_dir: str = "./data/books"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_dir: str = "./logs"
    console: bool = True


class AppConfig(BaseModel):
    """Root application configuration."""

    app: AppInfo = Field(default_factory=AppInfo)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # API token loaded from environment
    remote_api_token: str | None = None


def load_config(config_path: str | Path = "config.yaml") -> AppConfig:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Fully populated AppConfig instance.
    """
    load_dotenv()

    yaml_data: dict = {}
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file, encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

    config = AppConfig(**yaml_data)

    # Override remote settings from environment
    config.remote_api_token = os.getenv("JOPLIN_API_TOKEN")
    if api_url := os.getenv("JOPLIN_API_URL"):
        config.remote.api_url = api_url
    if log_level := os.getenv("LOG_LEVEL"):
        config.logging.level = log_level

    return config
