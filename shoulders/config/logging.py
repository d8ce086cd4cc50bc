"""Logging configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="WARNING")
    format: Literal["console", "json"] = Field(default="console")
    file: str | None = Field(default=None)
    max_size_mb: int = Field(default=10, ge=1)
    backup_count: int = Field(default=3, ge=1)
