"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DatabaseConfig(BaseModel):
    """Entity store connection parameters."""

    url: str = "sqlite+aiosqlite:///data/wagerbook.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 3600


class LifecycleConfig(BaseModel):
    """Wager lifecycle behaviour."""

    max_transient_retries: int = Field(default=3, ge=0)
    claim_expiry_days: int | None = Field(default=None, ge=1)  # None keeps claims pending forever
    max_description_length: int = 500


class NotificationConfig(BaseModel):
    """Outbound notification delivery."""

    webhook_url: str = ""
    timeout_seconds: float = 10.0


class ApiConfig(BaseModel):
    """HTTP server parameters."""

    host: str = "0.0.0.0"
    port: int = 8000
    identity_header: str = "X-User-Id"
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    environment: str = "development"
    log_level: str = "INFO"
    logfire_token: str = ""

    # Nested configuration sections
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["database", "lifecycle", "notifications", "api"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)

                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name] or {})

                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
