from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from headroom.config import AuthType
from headroom.models import CountTokensResponse, EmbedResponse, GenerateResponse, GenerationConfig, Turn, UsageMetadata

if TYPE_CHECKING:
    from openai import AsyncOpenAI
    from openai.types.chat import ChatCompletionChunk


@dataclass(slots=True, frozen=True)
class ToolCallDelta:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(slots=True, frozen=True)
class NormalizedChunk:
    content: str | None = None
    reasoning: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None
    token_usage: UsageMetadata | None = None
    cost: float | None = None


@dataclass(slots=True, frozen=True)
class LLMRequestConfig:
    client: AsyncOpenAI
    model_id: str
    extra_kwargs: dict[str, Any]  # pyright: ignore[reportExplicitAny]


EMPTY_MAP: Mapping[str, str] = {}


class LLMProvider(ABC):
    auth_type: AuthType

    @abstractmethod
    def configure_request(self, model_id: str, extra_params: Mapping[str, str] = EMPTY_MAP) -> LLMRequestConfig:
        """Returns the configured client, actual model name, and extra kwargs."""
        ...

    @abstractmethod
    def process_chunk(self, chunk: ChatCompletionChunk) -> NormalizedChunk:
        """Processes a raw chunk into a normalized structure."""
        ...


class ContentGenerator(ABC):
    """Buffered and streamed generation plus token counting and embedding for one backend."""

    @abstractmethod
    async def generate_content(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> GenerateResponse: ...

    @abstractmethod
    async def generate_content_stream(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> AsyncGenerator[GenerateResponse, None]:
        """
        Opens the stream and returns an iterator over its chunks. Errors raised while
        opening (rate limits, server faults) surface here so they can be retried.
        """
        ...

    @abstractmethod
    async def count_tokens(self, model: str, contents: Sequence[Turn]) -> CountTokensResponse: ...

    @abstractmethod
    async def embed_content(self, model: str, texts: Sequence[str]) -> EmbedResponse: ...
