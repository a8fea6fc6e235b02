# pyright: standard

import asyncio
from collections.abc import AsyncGenerator, Sequence
from typing import override

from headroom.llm.providers.base import ContentGenerator
from headroom.models import (
    Candidate,
    CountTokensResponse,
    EmbedResponse,
    FunctionCall,
    FunctionResponse,
    GenerateResponse,
    GenerationConfig,
    Part,
    Turn,
    UsageMetadata,
)
from headroom.retry import RetryOptions
from headroom.telemetry import TelemetryEvent, TelemetrySink

FAST_RETRY = RetryOptions(max_attempts=3, initial_delay=0, max_delay=0, jitter=0)

type ScriptItem = GenerateResponse | BaseException


def user(text: str) -> Turn:
    return Turn(role="user", parts=[Part(text=text)])


def model(text: str) -> Turn:
    return Turn(role="model", parts=[Part(text=text)])


def thought(text: str) -> Turn:
    return Turn(role="model", parts=[Part(text=text, thought=True)])


def function_call_turn(name: str, **args: object) -> Turn:
    return Turn(role="model", parts=[Part(function_call=FunctionCall(name=name, args=dict(args)))])


def function_response_turn(name: str, **response: object) -> Turn:
    return Turn(role="user", parts=[Part(function_response=FunctionResponse(name=name, response=dict(response)))])


def response_of(content: Turn | None, usage: UsageMetadata | None = None) -> GenerateResponse:
    candidates = [Candidate(content=content)] if content is not None else []
    return GenerateResponse(candidates=candidates, usage_metadata=usage)


def text_response(text: str, usage: UsageMetadata | None = None) -> GenerateResponse:
    return response_of(model(text), usage)


class StatusError(Exception):
    """Mimics SDK errors that expose an HTTP status code."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class FakeGenerator(ContentGenerator):
    """Replays scripted responses and streams, recording every request it receives."""

    def __init__(
        self,
        responses: Sequence[ScriptItem] = (),
        streams: Sequence[Sequence[ScriptItem] | BaseException] = (),
    ):
        self.responses: list[ScriptItem] = list(responses)
        self.streams: list[Sequence[ScriptItem] | BaseException] = list(streams)
        self.requests: list[list[Turn]] = []
        self.configs: list[GenerationConfig | None] = []
        self.gate: asyncio.Event | None = None
        self.finished_streams = 0

    @override
    async def generate_content(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> GenerateResponse:
        self.requests.append(list(contents))
        self.configs.append(config)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @override
    async def generate_content_stream(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> AsyncGenerator[GenerateResponse, None]:
        self.requests.append(list(contents))
        self.configs.append(config)
        script = self.streams.pop(0)
        if isinstance(script, BaseException):
            raise script
        return self._replay(script)

    async def _replay(self, script: Sequence[ScriptItem]) -> AsyncGenerator[GenerateResponse, None]:
        try:
            for item in script:
                await asyncio.sleep(0)
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.finished_streams += 1

    @override
    async def count_tokens(self, model: str, contents: Sequence[Turn]) -> CountTokensResponse:
        return CountTokensResponse(total_tokens=0)

    @override
    async def embed_content(self, model: str, texts: Sequence[str]) -> EmbedResponse:
        return EmbedResponse(embeddings=[[0.0] for _ in texts])


class RecordingSink(TelemetrySink):
    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    @override
    def emit(self, event: TelemetryEvent) -> None:
        self.events.append(event)
