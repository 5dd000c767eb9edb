"""Application configuration primitives."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")


class ConfigurationServiceConfig(BaseModel):
    base_url: str = Field(default="http://localhost:3001/api")
    cache_ttl: float = Field(default=300.0)
    timeout: float = Field(default=10.0)


class VelocityConfig(BaseModel):
    window_seconds: int = Field(default=3600, gt=0)
    retention_seconds: int = Field(default=86400, gt=0)
    default_category: str = Field(default="afiliado")
    dispatch_timeout: float | None = Field(default=5.0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    database_url: str = Field(default="sqlite+aiosqlite:///./velocity_guard.db")
    admin_secret: SecretStr = Field(default=SecretStr("change-me"))
    log_level: str = Field(default="INFO")
    configuration: ConfigurationServiceConfig = Field(default_factory=ConfigurationServiceConfig)
    velocity: VelocityConfig = Field(default_factory=VelocityConfig)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
