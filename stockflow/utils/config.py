"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class APIConfig(BaseModel):
    """Record store API configuration settings."""
    timeout: int = 30
    max_retries: int = 3
    retry_delay: int = 1
    exponential_backoff: bool = True


class LedgerConfig(BaseModel):
    """Production ledger write settings."""
    # Attempts at a version-conditioned house write before giving up
    max_write_attempts: int = 5
    # How long settled entry keys are remembered after their record committed
    settled_retention_hours: int = 24


class EstimatorConfig(BaseModel):
    """Store stock estimator thresholds and display settings."""
    critical_threshold: float = 50
    low_threshold: float = 100
    # Empty means "every SKU that has ever been fulfilled to the store"
    tracked_skus: List[str] = Field(default_factory=list)
    # SKU -> pieces per display unit (e.g. pieces per plate)
    display_conversions: Dict[str, float] = Field(default_factory=dict)


class LoggingFilesConfig(BaseModel):
    """Log file paths."""
    workflow: str = "logs/workflow.log"
    ledger: str = "logs/ledger.log"
    error: str = "logs/error.log"
    server: str = "logs/server.log"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    files: LoggingFilesConfig = LoggingFilesConfig()


class YAMLConfig(BaseModel):
    """Configuration loaded from YAML file."""
    api: APIConfig = APIConfig()
    ledger: LedgerConfig = LedgerConfig()
    estimator: EstimatorConfig = EstimatorConfig()
    logging: LoggingConfig = LoggingConfig()


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Record store settings
    record_store_backend: str = Field(default="memory", description="Record store backend (memory/http)")
    record_store_url: str = Field(default="http://localhost:8787", description="Record store base URL")
    record_store_api_key: Optional[str] = Field(default=None, description="Record store API key")
    record_store_seed_file: Optional[str] = Field(default=None, description="JSON file seeding the in-memory store")

    # Application settings
    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: Optional[str] = Field(default=None, description="Override log level")
    config_file: Optional[str] = Field(default=None, description="Path to YAML config file")
    port: int = Field(default=8000, description="Server port")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class AppConfig:
    """Combined application configuration."""

    def __init__(self):
        self.env = Settings()

        # Load YAML config
        if self.env.config_file:
            config_path = Path(self.env.config_file)
        else:
            config_path = Path(__file__).parent.parent.parent / "config" / "config.yml"

        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}
                self.yaml = YAMLConfig(**yaml_data)
        else:
            self.yaml = YAMLConfig()

        # Override log level if specified in env
        if self.env.log_level:
            self.yaml.logging.level = self.env.log_level

    @property
    def api(self) -> APIConfig:
        return self.yaml.api

    @property
    def ledger(self) -> LedgerConfig:
        return self.yaml.ledger

    @property
    def estimator(self) -> EstimatorConfig:
        return self.yaml.estimator

    @property
    def logging(self) -> LoggingConfig:
        return self.yaml.logging

    @property
    def is_production(self) -> bool:
        return self.env.environment.lower() == "production"


@lru_cache()
def get_config() -> AppConfig:
    """Get cached configuration instance."""
    return AppConfig()
