"""Configuration management for medscan."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEDSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Vision model (Ollama-compatible chat endpoint)
    ollama_host: str = "http://localhost:11434"
    vision_model: str = "llama3.2-vision"
    vision_api_key: Optional[str] = None
    vision_timeout: int = 120

    # Image normalization
    max_image_dimension: int = 1568

    # Sync/async decision
    large_image_threshold_bytes: int = 2 * 1024 * 1024
    base_extraction_seconds: float = 2.0
    seconds_per_megabyte: float = 1.5

    # Background jobs
    redis_url: str = "redis://localhost:6379/0"
    extraction_max_attempts: int = 3
    retry_backoff_base: int = 3

    # Local storage
    data_dir: str = "./data"
    catalog_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    @property
    def blob_dir(self) -> Path:
        """Directory holding uploaded images."""
        return Path(self.data_dir) / "blobs"

    @property
    def records_dir(self) -> Path:
        """Directory holding scan record documents."""
        return Path(self.data_dir) / "records"


settings = Settings()
