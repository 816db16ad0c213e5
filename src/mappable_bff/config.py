# src/mappable_bff/config.py

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# .env is at the project root, two levels up from src/mappable_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

DEFAULT_SESSION_SECRET = "change-me"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.debug("Loaded .env file from: %s", ENV_FILE_PATH)
else:
    logger.debug(".env file not found at %s. Relying on environment variables.", ENV_FILE_PATH)


class Settings(BaseSettings):
    # === Server ===
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # === Session Management ===
    SESSION_SECRET_KEY: str = DEFAULT_SESSION_SECRET
    SESSION_MAX_AGE_SECONDS: int = 24 * 60 * 60

    # === Upstream Mappable hosts ===
    SCRIPT_HOST_URL: AnyHttpUrl = "https://js.api.mappable.world/v3/"
    TILE_HOST_URL: AnyHttpUrl = "https://tiles.mappable.world"
    SUGGEST_URL: AnyHttpUrl = "https://suggest.api.mappable.world/v1/suggest"
    GEOCODE_URL: AnyHttpUrl = "https://geocoder.api.mappable.world/v1"
    MAP_LANG: str = "en_US"
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def uses_default_secret(self) -> bool:
        return self.SESSION_SECRET_KEY == DEFAULT_SESSION_SECRET

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("ENVIRONMENT", mode='before')
    @classmethod
    def normalize_environment(cls, v: Any) -> str:
        # NODE_ENV-style values ("Production", " prod ") are accepted
        value = str(v or "development").strip().lower()
        if value == "prod":
            return "production"
        return value

    @field_validator("LOG_LEVEL", mode='before')
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        value = str(v or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"LOG_LEVEL: unknown level {v!r}")
        return value

    @field_validator("SESSION_SECRET_KEY")
    @classmethod
    def check_secret_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("SESSION_SECRET_KEY must not be empty.")
        return v

    @field_validator("SESSION_MAX_AGE_SECONDS", "UPSTREAM_TIMEOUT_SECONDS")
    @classmethod
    def check_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v


try:
    settings = Settings()
except Exception:
    logger.exception("Error instantiating Settings")
    raise
