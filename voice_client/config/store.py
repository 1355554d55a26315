"""Persistence helpers for voice client settings."""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from .paths import config_dir
from .settings import AppSettings, ConversationSettings, ServerSettings


def _settings_path() -> Path:
    return config_dir() / "voice_settings.json"


def _known(cls: type, payload: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keys ``cls`` declares, so older files still load."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in payload.items() if k in names}


def load_settings() -> AppSettings:
    """Load settings from disk (defaults when missing)."""
    path = _settings_path()
    if not path.exists():
        return AppSettings()

    raw_text = path.read_text(encoding="utf-8").lstrip("\ufeff")
    data = json.loads(raw_text)
    return AppSettings(
        server=ServerSettings(**_known(ServerSettings, data.get("server", {}))),
        conversation=ConversationSettings(**_known(ConversationSettings, data.get("conversation", {}))),
    )


def save_settings(settings: AppSettings) -> None:
    """Persist settings to disk."""
    path = _settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
