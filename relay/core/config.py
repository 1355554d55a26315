"""Unified relay configuration."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ORIGINS = [
    "http://localhost:8080",
    "http://127.0.0.1:8080",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


class Settings(BaseSettings):
    """Relay-wide settings (environment, .env, then config.json)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
    )

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3001
    server_name: str = "voice-chat-server"
    cors_origins: list[str] = DEFAULT_ORIGINS

    # Provider (Gemini)
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    llm_temperature: float = 0.7
    llm_top_p: float = 0.8
    llm_top_k: int = 40
    llm_max_output_tokens: int = 150

    # Relay
    relay_delay_ms: int = 300
    legacy_error_event: bool = True

    # Logs
    log_dir: str = "logs"
    log_rotate_mb: int = 5
    log_retention_days: int = 7
    mask_secrets_patterns: str = "api_key,apikey,token,authorization,password"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load config.json from the project root when present."""
        config_path = Path(__file__).resolve().parents[2] / "config.json"
        if config_path.is_file():
            try:
                return json.loads(config_path.read_text())
            except ValueError:
                return {}
        return {}

    @property
    def allow_any_origin(self) -> bool:
        return self.cors_origins == ["*"]


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
