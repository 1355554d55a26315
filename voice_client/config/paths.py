"""Filesystem helpers for the voice client."""

from __future__ import annotations

import os
from pathlib import Path


def config_dir() -> Path:
    """Directory storing local configuration (``REV_VOICE_HOME`` overrides it)."""
    override = os.environ.get("REV_VOICE_HOME")
    root = Path(override) if override else Path.home() / ".rev-voice"
    root.mkdir(parents=True, exist_ok=True)
    return root
