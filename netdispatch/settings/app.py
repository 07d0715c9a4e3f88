"""Dispatcher settings powered by Pydantic BaseSettings."""

import logging
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DispatchSettings(BaseSettings):
    """Environment configuration shared by every dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NETDISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(
        default="", description="Base URL that relative request URLs resolve against"
    )
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        "netdispatch/0.1"
    )
    default_retry_delay_ms: Annotated[int, Field(ge=0, le=300000)] = 1000
    follow_redirects: bool = True
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log_level names a standard logging level."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @property
    def log_level_number(self) -> int:
        """Get the numeric logging level."""
        level: int = logging.getLevelName(self.log_level)
        return level


def get_settings() -> DispatchSettings:
    """Get a settings instance."""
    return DispatchSettings()
