"""Logging output configuration."""

from typing import Literal

from pydantic import BaseModel


class LoggingConfig(BaseModel, frozen=True):
    """Log level and renderer selection."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    json_format: bool
