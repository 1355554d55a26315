import pytest

from relay.core import relay as relay_module
from relay.core.config import Settings
from relay.core.errors import (
    GENERIC_FAILURE_MESSAGE,
    UNINITIALIZED_MESSAGE,
    EmptyInputError,
    ProviderFailureError,
    ProviderUninitializedError,
)
from relay.core.relay import generate_reply


@pytest.mark.asyncio
async def test_reply_is_returned_verbatim(ready_provider) -> None:
    ready_provider.reply = "  Revolt RV400 has a range of 150 km.\n"
    text = await generate_reply("What's the range of the RV400?")
    assert text == "  Revolt RV400 has a range of 150 km.\n"
    assert ready_provider.prompts == ["What's the range of the RV400?"]
    call = ready_provider.calls[-1]
    assert call["model"] == "gemini-2.0-flash"
    assert call["config"].max_output_tokens == 150


@pytest.mark.asyncio
@pytest.mark.parametrize("transcript", ["", "   ", None])
async def test_empty_input_never_reaches_provider(ready_provider, transcript) -> None:
    with pytest.raises(EmptyInputError) as exc:
        await generate_reply(transcript)
    assert exc.value.message == "No transcription received. Please try speaking again."
    assert ready_provider.prompts == []


@pytest.mark.asyncio
async def test_uninitialized_provider() -> None:
    with pytest.raises(ProviderUninitializedError) as exc:
        await generate_reply("hello")
    assert exc.value.message == UNINITIALIZED_MESSAGE


@pytest.mark.asyncio
async def test_provider_error_message_is_forwarded(ready_provider) -> None:
    ready_provider.error = RuntimeError("quota exceeded")
    with pytest.raises(ProviderFailureError) as exc:
        await generate_reply("hello")
    assert exc.value.message == "quota exceeded"


@pytest.mark.asyncio
async def test_provider_error_without_message_uses_generic_text(ready_provider) -> None:
    ready_provider.error = RuntimeError()
    with pytest.raises(ProviderFailureError) as exc:
        await generate_reply("hello")
    assert exc.value.message == GENERIC_FAILURE_MESSAGE


@pytest.mark.asyncio
async def test_missing_text_is_a_failure(ready_provider) -> None:
    ready_provider.reply = None
    with pytest.raises(ProviderFailureError):
        await generate_reply("hello")


@pytest.mark.asyncio
async def test_throttle_delay_is_applied(ready_provider, monkeypatch) -> None:
    delays = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    monkeypatch.setattr(relay_module.asyncio, "sleep", _sleep)
    await generate_reply("hello", settings=Settings(relay_delay_ms=300))
    assert delays == [0.3]

    delays.clear()
    await generate_reply("hello", settings=Settings(relay_delay_ms=0))
    assert delays == []
