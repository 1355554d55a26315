from __future__ import annotations

from typing import Any, Dict

GENERIC_FAILURE_MESSAGE = "Failed to process your message. Please try again."
UNINITIALIZED_MESSAGE = "Gemini AI not initialized. Please configure API key."


class RelayError(Exception):
    """Base class for failures that end the current turn."""

    code = "relay_error"
    default_message = GENERIC_FAILURE_MESSAGE

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ProviderUninitializedError(RelayError):
    """No credential or model configured."""

    code = "provider_uninitialized"
    default_message = UNINITIALIZED_MESSAGE


class EmptyInputError(RelayError):
    """Missing transcript or credential, rejected before reaching the provider."""

    code = "empty_input"
    default_message = "No transcription received. Please try speaking again."


class ProviderFailureError(RelayError):
    """The provider raised while generating content."""

    code = "provider_failure"


def error_response(message: str, *, code: str | None = None, details: Any | None = None) -> Dict[str, Any]:
    """Build the ``{"error": ...}`` body returned by the HTTP surface."""
    payload: Dict[str, Any] = {"error": message}
    if code is not None:
        payload["code"] = code
    if details is not None:
        payload["details"] = details
    return payload
