from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("dental_chart.config")


class Settings(BaseSettings):
    app_env: str = "development"
    database_url: str = "sqlite:///./dental_chart.db"
    draft_debounce_seconds: float = Field(default=0.5, alias="DRAFT_DEBOUNCE_SECONDS")
    history_page_limit: int = Field(default=200, alias="HISTORY_PAGE_LIMIT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @field_validator(
        "draft_debounce_seconds",
        "history_page_limit",
        "log_level",
        mode="before",
    )
    @classmethod
    def _coerce_empty_values(cls, value, info):
        if value in {"", None}:
            return cls.model_fields[info.field_name].default
        return value


def _is_production(app_env: str) -> bool:
    return app_env.strip().lower() in {"prod", "production"}


def validate_settings(settings: Settings) -> None:
    production = _is_production(settings.app_env)
    failures: list[str] = []
    warnings: list[str] = []

    if settings.database_url.startswith("sqlite"):
        msg = "DATABASE_URL points at SQLite; use a server database outside development"
        if production:
            failures.append(msg)
        else:
            warnings.append(msg)

    if settings.draft_debounce_seconds < 0:
        failures.append("DRAFT_DEBOUNCE_SECONDS must not be negative")
    elif settings.draft_debounce_seconds > 10:
        warnings.append("DRAFT_DEBOUNCE_SECONDS above 10s risks losing edits on navigation")

    if settings.history_page_limit < 1:
        failures.append("HISTORY_PAGE_LIMIT must be at least 1")

    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    if failures:
        raise RuntimeError("Config validation failed: " + "; ".join(failures))


settings = Settings()
