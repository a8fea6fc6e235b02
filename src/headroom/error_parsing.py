"""Recognizes backend error signatures and turns them into user-facing text."""

from typing import Any

import msgspec
import regex

from headroom.config import AuthType

ERROR_PREFIX = "[API Error: "

RATE_LIMIT_MESSAGE_CLOUD = (
    "\nThe AI service has indicated a rate limit. Please wait and try again. "
    + "Check your provider account quotas if this persists."
)
RATE_LIMIT_MESSAGE_OLLAMA = (
    "\nThe local Ollama service returned a rate limit error (e.g., 429). This might be due to a proxy "
    + "or to concurrent request limits on the Ollama server. Check your Ollama server logs and configuration."
)
RATE_LIMIT_MESSAGE_DEFAULT = "Your request has been rate limited by the AI service. Please wait and try again later."

_SERVER_ERROR_PATTERN = regex.compile(r"\b5\d{2}\b")


class _ApiErrorBody(msgspec.Struct):
    message: str
    code: int | None = None
    status: str | None = None


class _ApiErrorEnvelope(msgspec.Struct):
    error: _ApiErrorBody


def get_rate_limit_message(auth_type: AuthType | None) -> str:
    match auth_type:
        case AuthType.OPENAI | AuthType.OPENROUTER:
            return RATE_LIMIT_MESSAGE_CLOUD
        case AuthType.OLLAMA:
            return RATE_LIMIT_MESSAGE_OLLAMA
        case _:
            return RATE_LIMIT_MESSAGE_DEFAULT


def _decode_embedded_error(text: str) -> _ApiErrorEnvelope | None:
    json_start = text.find("{")
    if json_start == -1:
        return None
    try:
        return msgspec.json.decode(text[json_start:], type=_ApiErrorEnvelope)
    except (msgspec.DecodeError, msgspec.ValidationError):
        return None


def get_error_status(error: BaseException) -> int | None:
    """
    Status code carried by a backend error: a `status_code`/`status` field, or the
    `error.code` of a JSON payload embedded in the message.
    """
    for attr in ("status_code", "status"):
        value: Any = getattr(error, attr, None)  # pyright: ignore[reportExplicitAny]
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    envelope = _decode_embedded_error(str(error))
    if envelope is not None:
        return envelope.error.code
    return None


def is_retryable_error(error: BaseException) -> bool:
    """True for rate limiting (429) and server-side faults (5xx)."""
    status = get_error_status(error)
    if status is not None:
        return status == 429 or 500 <= status < 600

    message = str(error)
    if not message:
        return False
    return "429" in message or _SERVER_ERROR_PATTERN.search(message) is not None


def parse_and_format_api_error(error: BaseException | str, auth_type: AuthType | None = None) -> str:
    """Formats a backend error for display, adding a rate-limit hint for 429s."""
    if isinstance(error, BaseException):
        message = getattr(error, "message", None) or str(error)  # pyright: ignore[reportAny]
        text = f"{ERROR_PREFIX}{message}]"
        if get_error_status(error) == 429:
            text += get_rate_limit_message(auth_type)
        return text

    envelope = _decode_embedded_error(error)
    if envelope is None:
        return f"{ERROR_PREFIX}{error}]"

    final_message = envelope.error.message
    # The message may itself be a stringified error envelope.
    if (nested := _decode_embedded_error(final_message)) is not None:
        final_message = nested.error.message

    text = f"{ERROR_PREFIX}{final_message} (Status: {envelope.error.status})]"
    if envelope.error.code == 429:
        text += get_rate_limit_message(auth_type)
    return text
