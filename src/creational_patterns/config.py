"""
Runtime settings, read from `CREATIONAL_*` environment variables.

    CREATIONAL_LOCALE=eu               # pin the coffee shop family
    CREATIONAL_STORE_DIRECTORY=/data   # where the app's SQLite file lives
    CREATIONAL_STORE_LOAD_TIMEOUT=5    # seconds to wait for stores to open
"""

import tempfile
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from creational_patterns.domain.models import Locale


class CreationalSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CREATIONAL_")

    log_level: str = Field(default="INFO")
    # None picks a market at random on every new coffee shop.
    locale: Locale | None = Field(default=None)
    store_directory: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    app_identifier: str = Field(default="com.example.app", min_length=1)
    # Loading stores blocks the caller; never wait forever on disk I/O.
    store_load_timeout: float = Field(default=30.0, gt=0)


@lru_cache
def get_settings() -> CreationalSettings:
    return CreationalSettings()
