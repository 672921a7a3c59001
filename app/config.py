"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Watchlog", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p/w500", alias="TMDB_IMAGE_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")

    igdb_client_id: str | None = Field(
        default=None,
        alias="IGDB_CLIENT_ID",
        validation_alias=AliasChoices("IGDB_CLIENT_ID", "TWITCH_CLIENT_ID"),
    )
    igdb_client_secret: str | None = Field(
        default=None,
        alias="IGDB_CLIENT_SECRET",
        validation_alias=AliasChoices("IGDB_CLIENT_SECRET", "TWITCH_CLIENT_SECRET"),
    )
    igdb_api_url: HttpUrl = Field(
        default="https://api.igdb.com/v4", alias="IGDB_API_URL"
    )
    twitch_token_url: HttpUrl = Field(
        default="https://id.twitch.tv/oauth2/token", alias="TWITCH_TOKEN_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./watchlog.db", alias="DATABASE_URL"
    )
    data_dir: Path = Field(default=Path("./data"), alias="DATA_DIR")
    download_posters: bool = Field(default=True, alias="DOWNLOAD_POSTERS")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        """Accept log levels in any case."""

        if value is None:
            return "INFO"
        level = str(value).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return level

    @field_validator("tmdb_api_key", "igdb_client_id", "igdb_client_secret", mode="before")
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        """Treat empty credential values as unset."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def has_tmdb(self) -> bool:
        return bool(self.tmdb_api_key)

    @property
    def has_igdb(self) -> bool:
        return bool(self.igdb_client_id and self.igdb_client_secret)

    @property
    def image_dir(self) -> Path:
        """Directory poster images are written to."""

        return self.data_dir / "img"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
