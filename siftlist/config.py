"""Runtime configuration based on environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HttpLoaderSettings(BaseModel):
    base_url: AnyHttpUrl | None = Field(
        default=None,
        description="Endpoint returning JSON pages; required only for HttpPageLoader.",
    )
    path: str = Field(default="/search", min_length=1)
    query_param: str = Field(default="q", min_length=1)
    cursor_param: str = Field(default="cursor", min_length=1)
    page_size_param: str = Field(default="limit", min_length=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0)


class SearchSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SIFTLIST_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    debounce_seconds: float = Field(default=0.3, ge=0)
    trigger_mode: Literal["on_edit", "on_submit"] = "on_edit"
    case_sensitive: bool = False
    min_search_length: int = Field(default=0, ge=0)

    fuzzy_enabled: bool = False
    fuzzy_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    max_edit_distance: int = Field(default=2, ge=0, le=4)

    cache_enabled: bool = True
    max_cache_size: int = Field(default=100, ge=0, description="0 disables caching.")

    page_size: int = Field(default=20, ge=1)
    paginate_offline: bool = False

    http: HttpLoaderSettings = Field(default_factory=HttpLoaderSettings)

    @field_validator("trigger_mode", mode="before")
    @classmethod
    def _normalize_trigger_mode(cls, value):
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


@lru_cache
def get_settings() -> SearchSettings:
    """Return cached settings instance."""

    return SearchSettings()


__all__ = [
    "HttpLoaderSettings",
    "SearchSettings",
    "get_settings",
]
