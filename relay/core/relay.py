from __future__ import annotations

import asyncio
from typing import Any

from relay.core.config import Settings, get_settings
from relay.core.errors import EmptyInputError, GENERIC_FAILURE_MESSAGE, ProviderFailureError
from relay.core.logger import get_logger
from relay.core.provider import ProviderRegistry, provider

logger = get_logger("relay")


def _extract_text(result: Any) -> str:
    text = getattr(result, "text", None)
    if text is None:
        raise ProviderFailureError("Empty response from Gemini")
    return str(text)


async def generate_reply(
    transcript: str,
    *,
    registry: ProviderRegistry | None = None,
    settings: Settings | None = None,
) -> str:
    """Forward ``transcript`` to the provider and return the generated text.

    Raises EmptyInputError for blank input, ProviderUninitializedError when no
    model is configured and ProviderFailureError when generation fails. The
    provider call is never retried.
    """
    if not isinstance(transcript, str) or not transcript.strip():
        raise EmptyInputError()
    registry = registry or provider
    settings = settings or get_settings()
    model = registry.require_model()

    if settings.relay_delay_ms > 0:
        await asyncio.sleep(settings.relay_delay_ms / 1000)

    logger.info("Transcription received", extra={"chars": len(transcript)})
    try:
        result = await model.generate(transcript)
        text = _extract_text(result)
    except ProviderFailureError:
        raise
    except Exception as exc:
        logger.error("Gemini generation failed: %s", exc)
        raise ProviderFailureError(str(exc) or GENERIC_FAILURE_MESSAGE) from exc
    logger.info("AI response generated", extra={"chars": len(text)})
    return text
