"""Application configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ADSBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Default account context (overridable per request)
    account_id: str = "default"
    marketplace: str = "US"

    # Data directory
    data_dir: Path = Path("./data")

    # Evidence pack
    chunk_days: int = Field(default=7, ge=1)
    all_range_cap_days: int = Field(default=365, ge=1)
    coverage_campaign_limit: int = Field(default=50, ge=0)
    coverage_target_limit: int = Field(default=500, ge=0)
    coverage_threshold: float = Field(default=0.95, gt=0, le=1)
    require_complete_packs: bool = False

    # Experiment detail
    timeline_major_limit: int = Field(default=10, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    @property
    def db_path(self) -> Path:
        return self.data_dir / "adsbook.db"

    def ensure_data_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
