"""Process-wide Gemini client with an explicit init/replace lifecycle."""

from __future__ import annotations

import threading
from typing import Any, Literal

from google import genai
from google.genai import types

from relay.core.config import Settings, get_settings
from relay.core.errors import ProviderUninitializedError
from relay.core.logger import get_logger, mask_secret
from relay.core.prompts import SYSTEM_INSTRUCTION

logger = get_logger("provider")

ProviderStatus = Literal["uninitialized", "ready"]


def build_generation_config(settings: Settings) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(
        system_instruction=SYSTEM_INSTRUCTION,
        temperature=settings.llm_temperature,
        top_p=settings.llm_top_p,
        top_k=settings.llm_top_k,
        max_output_tokens=settings.llm_max_output_tokens,
    )


class GeminiModel:
    """A client bound to one model name and generation config."""

    def __init__(self, client: Any, model_name: str, config: types.GenerateContentConfig) -> None:
        self.client = client
        self.model_name = model_name
        self.config = config

    async def generate(self, prompt: str) -> Any:
        return await self.client.aio.models.generate_content(
            model=self.model_name,
            contents=prompt,
            config=self.config,
        )


class ProviderRegistry:
    """Holds the single model used by every relay turn.

    ``initialize`` is the only mutator: it replaces the model wholesale and
    never raises. A failed initialization leaves the registry uninitialized so
    later turns fail fast with :class:`ProviderUninitializedError`.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings
        self._lock = threading.Lock()
        self._api_key: str | None = None
        self._model: GeminiModel | None = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def api_key(self) -> str | None:
        return self._api_key

    @property
    def status(self) -> ProviderStatus:
        return "ready" if self._api_key and self._model is not None else "uninitialized"

    @property
    def is_configured(self) -> bool:
        return self.status == "ready"

    def initialize(self, api_key: str) -> bool:
        """Build a fresh model for ``api_key``; return False on failure."""
        settings = self.settings
        with self._lock:
            self._api_key = api_key or None
            self._model = None
            if not api_key:
                logger.warning("Provider initialization skipped: empty API key")
                return False
            try:
                self._model = GeminiModel(
                    genai.Client(api_key=api_key),
                    settings.gemini_model,
                    build_generation_config(settings),
                )
            except Exception as exc:
                logger.error(
                    "Error initializing Gemini AI: %s",
                    exc,
                    extra={"model": settings.gemini_model, "key_hint": mask_secret(api_key)},
                )
                self._model = None
                return False
        logger.info(
            "Gemini AI initialized successfully",
            extra={"model": settings.gemini_model, "key_hint": mask_secret(api_key)},
        )
        return True

    def require_model(self) -> GeminiModel:
        """Return the ready model or raise ProviderUninitializedError."""
        model = self._model
        if not self._api_key or model is None:
            raise ProviderUninitializedError()
        return model

    def reset(self) -> None:
        with self._lock:
            self._api_key = None
            self._model = None


provider = ProviderRegistry()


def initialize_from_settings(registry: ProviderRegistry | None = None) -> bool:
    """Initialize the registry from ``GEMINI_API_KEY`` when it is set."""
    registry = registry or provider
    api_key = registry.settings.gemini_api_key
    if not api_key:
        logger.warning(
            "Gemini API key not configured. Set GEMINI_API_KEY or use /set-api-key"
        )
        return False
    return registry.initialize(api_key)
