import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from relay.core import provider as provider_module  # noqa: E402
from relay.core.config import get_settings  # noqa: E402
from relay.core.provider import provider  # noqa: E402


class DummyResult:
    def __init__(self, text: Optional[str]) -> None:
        self.text = text


class DummyModels:
    def __init__(self, owner: "DummyGenAI") -> None:
        self.owner = owner

    async def generate_content(self, model: str, contents: str, config: Any) -> DummyResult:
        self.owner.prompts.append(contents)
        self.owner.calls.append({"model": model, "config": config})
        if self.owner.error is not None:
            raise self.owner.error
        return DummyResult(self.owner.reply)


class DummyClient:
    def __init__(self, owner: "DummyGenAI", api_key: str) -> None:
        self.api_key = api_key
        self.aio = SimpleNamespace(models=DummyModels(owner))


class DummyGenAI:
    """Stands in for the ``google.genai`` module."""

    def __init__(self) -> None:
        self.reply: Optional[str] = "Hello from Rev"
        self.error: Optional[Exception] = None
        self.fail_init = False
        self.configured_keys: List[str] = []
        self.prompts: List[str] = []
        self.calls: List[dict] = []

    def Client(self, api_key: str) -> DummyClient:  # noqa: N802
        if self.fail_init:
            raise ValueError("invalid client configuration")
        self.configured_keys.append(api_key)
        return DummyClient(self, api_key)


@pytest.fixture(autouse=True)
def _relay_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("RELAY_DELAY_MS", "0")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    provider.reset()
    yield
    provider.reset()
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def fake_genai(monkeypatch: pytest.MonkeyPatch) -> DummyGenAI:
    dummy = DummyGenAI()
    monkeypatch.setattr(provider_module, "genai", dummy)
    return dummy


@pytest.fixture
def ready_provider(fake_genai: DummyGenAI) -> DummyGenAI:
    assert provider.initialize("test-key-1234")
    return fake_genai
