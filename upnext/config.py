"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Up Next", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_URL"
    )
    default_region: str = Field(default="US", alias="DEFAULT_REGION")

    response_cache_seconds: int = Field(default=600, alias="CACHE_TTL", ge=1)
    http_timeout_seconds: float = Field(default=20.0, alias="HTTP_TIMEOUT", gt=0)

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank_key(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("default_region", mode="before")
    @classmethod
    def _normalise_region(cls, value: object) -> str:
        """Accept region codes in any case, e.g. ``gb`` -> ``GB``."""

        if value is None:
            return "US"
        region = str(value).strip().upper()
        if len(region) != 2 or not region.isascii() or not region.isalpha():
            raise ValueError("DEFAULT_REGION must be a two-letter country code")
        return region

    @property
    def image_base_url(self) -> str:
        return str(self.tmdb_image_url).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
