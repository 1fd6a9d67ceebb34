from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "Coordination Portal"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./portal.db"

    # Visibility
    visibility_rules_table_enabled: bool = True  # dedicated rules table before embedded columns
    visibility_defaults_file: Optional[str] = None  # YAML override of default-by-type table

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
