"""Local configuration models for the voice client."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class ServerSettings:
    """Connection settings for the relay."""

    base_url: str = "http://localhost:3001"
    channel_path: str = "/ws"
    origin: str | None = None
    verify_ssl: bool = True
    request_timeout: float = 10.0

    @property
    def channel_url(self) -> str:
        base = self.base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return base + self.channel_path


@dataclass(slots=True)
class ConversationSettings:
    """Turn-taking timings."""

    response_timeout: float = 10.0
    recovery_delay: float = 1.0
    seconds_per_word: float = 0.05


@dataclass(slots=True)
class AppSettings:
    """Full set of settings for the voice client."""

    server: ServerSettings = field(default_factory=ServerSettings)
    conversation: ConversationSettings = field(default_factory=ConversationSettings)
