"""
Application settings with Pydantic v2 validation.

Loads configuration from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    # "sqlite" runs every unit of work in one transaction,
    # "memory" is the non-atomic document-style backend
    backend: Literal["sqlite", "memory"] = "sqlite"
    data_dir: Path = Path("data")
    db_name: str = "watchcraft.db"

    # SQLite settings
    pool_size: int = 5
    busy_timeout: int = 30000  # ms

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


class CacheSettings(BaseSettings):
    """Per-entity cache lifetimes, in seconds."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    enabled: bool = True
    customers_ttl: int = 300
    inventory_ttl: int = 300
    sales_ttl: int = 600
    services_ttl: int = 600
    invoices_ttl: int = 600
    expenses_ttl: int = 600

    def ttl_for(self, table: str) -> int:
        """TTL for an entity collection, keyed by its table name."""
        return int(getattr(self, f"{table}_ttl", 300))


class DocumentSettings(BaseSettings):
    """Side-effect document generation configuration."""

    model_config = SettingsConfigDict(env_prefix="DOCUMENTS_")

    timeout: float = 10.0  # seconds per generate() attempt

    # Retry settings
    max_retries: int = 3
    retry_delay: float = 0.5
    retry_multiplier: float = 2.0


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Watchcraft Core"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Audit trail (the watchcraft.audit logger)
    audit_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    audit_log_file: Path | None = None

    # Sub-settings
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    documents: DocumentSettings = Field(default_factory=DocumentSettings)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
