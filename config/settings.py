from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from relay.errors import ConfigurationError


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here. The upstream endpoint
    and model are fixed in ``relay.core.prompt``, not configured.
    """

    def __init__(self) -> None:
        self.openrouter_api_key: Optional[str] = os.getenv("OPENROUTER_API_KEY") or None
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8080"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def require_api_key(self) -> str:
        if not self.openrouter_api_key:
            raise ConfigurationError(
                "OPENROUTER_API_KEY environment variable is not set"
            )
        return self.openrouter_api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
