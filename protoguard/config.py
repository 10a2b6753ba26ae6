"""Library configuration via environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from ``PROTOGUARD_*`` environment variables."""

    # Logging
    LOG_LEVEL: str = "info"
    DEBUG: bool = False

    # Validation
    FAULT_POLICY: Literal["raise", "collect"] = "raise"
    EAGER_COMPILE: bool = False
    MAX_DEPTH: int = 64

    # Expression evaluator
    REGEX_CACHE_SIZE: int = 256

    model_config = {
        "env_prefix": "PROTOGUARD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
