"""Chat message validation."""

from typing import Any


class MessageValidationError(ValueError):
    """Raised when an incoming chat message is rejected. Mapped to HTTP 400."""


def validate_chat_message(message: Any, max_length: int) -> str:
    """Check a raw message and return it trimmed.

    Raises:
        MessageValidationError: If the message is missing, not a string, blank or too long
    """
    if message is None or message == "":
        raise MessageValidationError("Message is required")
    if not isinstance(message, str):
        raise MessageValidationError("Message must be a string")

    trimmed = message.strip()
    if not trimmed:
        raise MessageValidationError("Message cannot be empty or whitespace-only")
    if len(trimmed) > max_length:
        raise MessageValidationError(f"Message exceeds maximum length of {max_length} characters")
    return trimmed
