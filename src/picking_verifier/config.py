"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting has the wrong type, the app fails fast with a
clear error message.

Usage:
    from picking_verifier.config import get_settings
    settings = get_settings()
    print(settings.bling_situacao_verificado_id)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the picking verifier."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 3000
    static_dir: str = "public"

    # --- Bling OAuth ---
    bling_client_id: str = ""
    bling_client_secret: str = ""
    bling_redirect_uri: str = "http://localhost:3000/oauth/callback"
    bling_token_path: str = "./bling_token.json"

    # --- Bling API ---
    bling_api_base_url: str = "https://www.bling.com.br/Api/v3"
    bling_timeout_seconds: float = 15.0
    # Account specific id of the "Verified" situation (Open=6 and
    # In-Progress=15 are fixed, see domain.enums.Situation).
    bling_situacao_verificado_id: int = 24

    # --- Monitor ---
    monitor_queue_size: int = 100
    monitor_heartbeat_seconds: float = 15.0

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def bling_authorize_url(self) -> str:
        return f"{self.bling_api_base_url}/oauth/authorize"

    @property
    def bling_token_url(self) -> str:
        return f"{self.bling_api_base_url}/oauth/token"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
