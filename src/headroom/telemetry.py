"""
API request/response/error events.

Emission is fire-and-forget: a failing sink is logged at debug level and never
reaches the caller.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, final, override, runtime_checkable

import msgspec
from msgspec import Struct

from headroom.chat.content import flatten_text
from headroom.models import Turn, UsageMetadata

LOGGER = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ApiRequestEvent(Struct, frozen=True, tag="api_request", tag_field="event_name"):
    model: str
    request_text: str
    timestamp: str = msgspec.field(default_factory=_now)


class ApiResponseEvent(Struct, frozen=True, tag="api_response", tag_field="event_name"):
    model: str
    duration_ms: int
    usage: UsageMetadata | None = None
    response_text: str | None = None
    timestamp: str = msgspec.field(default_factory=_now)


class ApiErrorEvent(Struct, frozen=True, tag="api_error", tag_field="event_name"):
    model: str
    error: str
    duration_ms: int
    error_type: str = "unknown"
    timestamp: str = msgspec.field(default_factory=_now)


type TelemetryEvent = ApiRequestEvent | ApiResponseEvent | ApiErrorEvent


class TelemetryRecord(Struct, frozen=True):
    user_id: str
    session_id: str
    event: TelemetryEvent


@runtime_checkable
class TelemetrySink(Protocol):
    def emit(self, event: TelemetryEvent) -> None: ...


@final
class LoggingTelemetrySink(TelemetrySink):
    @override
    def emit(self, event: TelemetryEvent) -> None:
        match event:
            case ApiRequestEvent(model=model, request_text=text):
                LOGGER.debug("API request to %s (%d chars)", model, len(text))
            case ApiResponseEvent(model=model, duration_ms=duration_ms, usage=usage):
                tokens = usage.total_token_count if usage else None
                LOGGER.info("API response from %s in %dms (tokens: %s)", model, duration_ms, tokens)
            case ApiErrorEvent(model=model, error=error, error_type=error_type, duration_ms=duration_ms):
                LOGGER.info("API error from %s after %dms: %s: %s", model, duration_ms, error_type, error)


@final
class JsonlTelemetrySink(TelemetrySink):
    """Appends one JSON record per event to a local file."""

    def __init__(self, outfile: Path, user_id: str, session_id: str | None = None):
        self._outfile = outfile
        self._user_id = user_id
        self._session_id = session_id or str(uuid.uuid4())
        self._encoder = msgspec.json.Encoder()

    @override
    def emit(self, event: TelemetryEvent) -> None:
        record = TelemetryRecord(user_id=self._user_id, session_id=self._session_id, event=event)
        self._outfile.parent.mkdir(parents=True, exist_ok=True)
        with self._outfile.open("ab") as f:
            _ = f.write(self._encoder.encode(record) + b"\n")


class Telemetry:
    def __init__(self, sinks: Sequence[TelemetrySink] | None = None):
        self._sinks: list[TelemetrySink] = list(sinks) if sinks is not None else [LoggingTelemetrySink()]

    def log_api_request(self, model: str, contents: Sequence[Turn]) -> None:
        self._emit(ApiRequestEvent(model=model, request_text=flatten_text(contents)))

    def log_api_response(
        self,
        model: str,
        duration_ms: int,
        usage: UsageMetadata | None,
        response_text: str | None,
    ) -> None:
        self._emit(ApiResponseEvent(model=model, duration_ms=duration_ms, usage=usage, response_text=response_text))

    def log_api_error(self, model: str, error: BaseException, duration_ms: int) -> None:
        self._emit(
            ApiErrorEvent(
                model=model,
                error=str(error),
                duration_ms=duration_ms,
                error_type=type(error).__name__,
            )
        )

    def _emit(self, event: TelemetryEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception:
                LOGGER.debug("Telemetry sink %r failed", sink, exc_info=True)
