"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get(
    "SAT_VERIFIER_BASE_PATH",
    os.environ.get("APP_BASE_PATH", Path.home() / "sat_verifier")
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # SAT gateway (the microservice that holds the SAT session)
    sat_gateway_url: str = Field(default="http://localhost:8080")
    sat_ca_bundle: Optional[str] = Field(default=None)
    sat_timeout_seconds: float = Field(default=600.0)
    sat_connect_timeout_seconds: float = Field(default=15.0)
    sat_request_budget_seconds: float = Field(default=900.0)
    sat_retry_attempts: int = Field(default=3)

    # Detailed download limits
    default_max_details: int = Field(default=50)
    default_download_concurrency: int = Field(default=25)
    max_download_concurrency: int = Field(default=25)

    # FIEL password encryption (Fernet key, urlsafe base64)
    fiel_encryption_key: Optional[str] = Field(default=None)

    # Storage
    data_dir: Path = Field(default=APP_BASE_PATH / "data")
    profiles_dir: Optional[Path] = Field(default=None)
    ledger_dir: Optional[Path] = Field(default=None)
    credential_storage_dir: Optional[Path] = Field(default=None)
    log_dir: Optional[Path] = Field(default=None)

    def effective_concurrency(self, requested: Optional[int]) -> int:
        """
        Clamp a caller-supplied concurrency to the configured ceiling.
        Returns: max(1, min(requested or default, max_download_concurrency))
        """
        value = requested if requested is not None else self.default_download_concurrency
        return max(1, min(value, self.max_download_concurrency))

    @property
    def resolved_profiles_dir(self) -> Path:
        return self.profiles_dir or self.data_dir / "empresas"

    @property
    def resolved_ledger_dir(self) -> Path:
        return self.ledger_dir or self.data_dir / "contabilidad"

    @property
    def resolved_credential_storage_dir(self) -> Path:
        return self.credential_storage_dir or self.data_dir / "storage" / "sat"

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir or APP_BASE_PATH / "logs"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
