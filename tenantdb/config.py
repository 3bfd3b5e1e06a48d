"""Application configuration using pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AdminAccountConfig(BaseModel):
    """An administrator account reachable through the login allow-list."""

    id: str
    name: str


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via:
    1. Environment variables (e.g., DATA_DIR=/my/path)
    2. .env file in the project root

    ADMIN_ACCOUNTS is a JSON object mapping a login password to an account,
    e.g. ADMIN_ACCOUNTS='{"s3cret": {"id": "acc_1", "name": "Account 1"}}'.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API settings
    api_title: str = "TenantDB API"
    api_version: str = "0.1.0"
    api_prefix: str = "/api"
    debug: bool = True  # Default to True for development

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3030

    # Base URL advertised in project records for client applications
    public_url: str = "http://localhost:3030"

    # Administrator login allow-list (password -> account)
    admin_accounts: dict[str, AdminAccountConfig] = {}

    # Storage
    storage_backend: Literal["duckdb", "memory"] = "duckdb"
    data_dir: Path = Path("./data")
    metadata_db_path: Path | None = None

    # bcrypt cost factor for project end-user passwords
    password_hash_rounds: int = 12

    # Realtime: max undelivered change events per subscriber
    realtime_queue_size: int = 256

    @model_validator(mode="after")
    def set_default_paths(self) -> "Settings":
        """Set default paths based on data_dir if not explicitly provided."""
        if self.metadata_db_path is None:
            self.metadata_db_path = self.data_dir / "tenantdb.duckdb"
        return self


# Global settings instance
settings = Settings()
