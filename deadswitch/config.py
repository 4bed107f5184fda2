from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from deadswitch.utils.formatting import parse_window


class Settings(BaseSettings):
    # App environment
    env: str = Field(default="development", alias="ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./dev.db", alias="DATABASE_URL")

    # Reminder engine
    # "<n>h" or "<n>m"; anything else falls back to 24 hours
    escalation_window: str = Field(default="24h", alias="ESCALATION_WINDOW")
    # Test mode: replaces every message's prompt interval, e.g. "5m" or "2h"
    prompt_interval_override: Optional[str] = Field(default=None, alias="PROMPT_INTERVAL_OVERRIDE")
    escalate_on_prompt_failure: bool = Field(default=True, alias="ESCALATE_ON_PROMPT_FAILURE")
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    scheduler_max_concurrent_firings: int = Field(default=10, alias="SCHEDULER_MAX_CONCURRENT_FIRINGS")

    # Notifier
    notifier_backend: str = Field(default="log", alias="NOTIFIER_BACKEND")  # log | mailgun
    notifier_timeout_seconds: float = Field(default=10.0, alias="NOTIFIER_TIMEOUT_SECONDS")
    mailgun_api_key: Optional[str] = Field(default=None, alias="MAILGUN_API_KEY")
    mailgun_domain: Optional[str] = Field(default=None, alias="MAILGUN_DOMAIN")
    mailgun_sender: Optional[str] = Field(default=None, alias="MAILGUN_SENDER")
    mailgun_api_base_url: str = Field(default="https://api.mailgun.net/v3", alias="MAILGUN_API_BASE_URL")
    check_in_base_url: str = Field(default="http://localhost:5173", alias="CHECK_IN_BASE_URL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def escalation_window_delta(self) -> timedelta:
        return parse_window(self.escalation_window)

    @property
    def prompt_interval_override_delta(self) -> Optional[timedelta]:
        if not self.prompt_interval_override:
            return None
        return parse_window(self.prompt_interval_override, default=None)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
