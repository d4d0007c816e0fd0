"""
Configuration for history archive ingestion.

Two layers:

- `Settings`: process-wide values from environment variables / `.env`
  (database, logging, batching, sync schedule), loaded with pydantic-settings.
- `ArchiveConfig`: the JSON configuration file selected with `--config`, naming
  the local and remote archive of each network and optionally overriding the
  mirroring tool path and database connection.

Example configuration file:

    {
      "archivistToolPath": "/usr/local/bin/stellar-archivist",
      "db": {"host": "localhost", "database": "stellar_history"},
      "live": {
        "harLocalPath": "/srv/har/live",
        "harRemotePath": "http://history.stellar.org/prd/core-live/core_live_001"
      },
      "testnet": {
        "harLocalPath": "/srv/har/testnet",
        "harRemotePath": "http://history.stellar.org/prd/core-testnet/core_testnet_001"
      }
    }
"""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from har_ingest.archive.checkpoints import LEDGERS_PER_CHECKPOINT
from har_ingest.domain.models import Network
from har_ingest.errors import ConfigError


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("stellar_history", alias="DB_NAME")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Ingestion
    ledgers_per_batch: int = Field(2000, alias="LEDGERS_PER_BATCH", ge=1)
    decode_workers: int = Field(1, alias="DECODE_WORKERS", ge=1)

    # Archive sync
    archivist_tool_path: str = Field("stellar-archivist", alias="ARCHIVIST_TOOL_PATH")
    sync_interval_minutes: float = Field(5.0, alias="SYNC_INTERVAL_MINUTES", gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def checkpoints_per_batch(self) -> int:
        """Whole checkpoints per batch; never less than one."""
        return max(self.ledgers_per_batch // LEDGERS_PER_CHECKPOINT, 1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


class DatabaseConfig(BaseModel):
    """Optional per-file database overrides; unset values fall back to Settings."""

    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None


class NetworkArchive(BaseModel):
    local_path: str = Field(..., alias="harLocalPath")
    remote_path: str = Field(..., alias="harRemotePath")

    model_config = {"populate_by_name": True}


class ArchiveConfig(BaseModel):
    archivist_tool_path: Optional[str] = Field(None, alias="archivistToolPath")
    db: Optional[DatabaseConfig] = None
    live: Optional[NetworkArchive] = None
    testnet: Optional[NetworkArchive] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def network(self, network: Network) -> NetworkArchive:
        archive = getattr(self, network.value)
        if archive is None:
            raise ConfigError(f"Configuration has no '{network.value}' section")
        return archive


def load_archive_config(path: str | Path) -> ArchiveConfig:
    """
    Load and validate the JSON archive configuration file.

    Raises
    ------
    ConfigError
        If the file is missing, not JSON, or fails validation.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"Config file {config_path} not found.")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
        return ArchiveConfig.model_validate(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc


__all__ = [
    "Settings",
    "get_settings",
    "ArchiveConfig",
    "DatabaseConfig",
    "NetworkArchive",
    "load_archive_config",
]
