"""
Configuration management for the Radio/TV ingester.

Uses pydantic-settings to load configuration from environment variables
and .env files. Option names follow the ingester's command line options
(hotfolder, lukefolder, ...), so ``HOTFOLDER=/data/in`` works as well as
``-hotfolder=/data/in``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Folder layout
    hotfolder: Path = Path("radioTVMetaData")
    lukefolder: Path = Path("/tmp/failedFiles")  # failed files and PID markers
    coldfolder: Path = Path("processedFiles")
    stopfolder: Path = Path("stopFolder")

    # Repository Configuration
    wsdl: str = "bolt://localhost:7687"
    username: str = "fedoraAdmin"
    password: str = "fedoraAdminPass"
    shard_url_prefix: str = "http://www.statsbiblioteket.dk/doms/shard/"

    # Pre-ingest validation
    preingestschema: Path = Path("schemas/exportedRadioTVProgram.xsd")
    overwrite: bool = False

    # Scanner Configuration
    scanner_initial_delay: float = 5.0  # seconds
    scanner_period: float = 5.0  # seconds
    file_extension: str = ".xml"

    # Circuit breaker
    max_fail_count: int = 3

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # API Configuration
    api_port: int = 8000
    api_title: str = "Radio/TV Ingester API"
    api_version: str = "1.0.0"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def folders(self) -> dict[str, Path]:
        """Named folders the ingester needs on disk."""
        return {
            "hotfolder": self.hotfolder,
            "lukefolder": self.lukefolder,
            "coldfolder": self.coldfolder,
            "stopfolder": self.stopfolder,
        }

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a validated copy with the non-None overrides applied."""
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Settings.model_validate(values)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
