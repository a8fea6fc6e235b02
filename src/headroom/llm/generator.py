from collections.abc import AsyncGenerator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast, final, override

from msgspec import structs

from headroom.config import AuthType
from headroom.llm.providers.base import EMPTY_MAP, ContentGenerator, LLMProvider, LLMRequestConfig, NormalizedChunk
from headroom.llm.providers.utils import completion_to_response, decode_arguments, turns_to_messages
from headroom.models import (
    Candidate,
    CountTokensResponse,
    EmbedResponse,
    FunctionCall,
    GenerateResponse,
    GenerationConfig,
    Part,
    Turn,
)

if TYPE_CHECKING:
    from openai import AsyncStream
    from openai.types.chat import ChatCompletionChunk


# Rough estimate: 4 characters per token
CHARS_PER_TOKEN = 4


@dataclass(slots=True)
class _ToolCallBuffer:
    id: str | None = None
    name: str = ""
    arguments: list[str] = field(default_factory=list)

    def to_part(self) -> Part:
        return Part(function_call=FunctionCall(name=self.name, args=decode_arguments("".join(self.arguments)), id=self.id))


def _flush_tool_calls(buffers: dict[int, _ToolCallBuffer]) -> list[Part]:
    parts = [buffers[index].to_part() for index in sorted(buffers)]
    buffers.clear()
    return parts


def _chunk_responses(normalized: NormalizedChunk, has_choices: bool, tool_parts: list[Part]) -> list[GenerateResponse]:
    """
    One provider chunk may carry reasoning and visible output at once; those are
    split so every yielded response holds a single kind of model turn.
    """
    responses: list[GenerateResponse] = []
    if normalized.reasoning:
        thought = Turn(role="model", parts=[Part(text=normalized.reasoning, thought=True)])
        responses.append(GenerateResponse(candidates=[Candidate(content=thought)]))

    parts: list[Part] = []
    if normalized.content is not None:
        parts.append(Part(text=normalized.content))
    parts.extend(tool_parts)

    if parts or normalized.finish_reason or (has_choices and not normalized.reasoning):
        content = Turn(role="model", parts=parts)
        responses.append(GenerateResponse(candidates=[Candidate(content=content, finish_reason=normalized.finish_reason)]))
    elif not has_choices:
        responses.append(GenerateResponse())

    usage = normalized.token_usage
    if usage is not None and normalized.cost is not None and usage.cost is None:
        usage = structs.replace(usage, cost=normalized.cost)
    if usage is not None:
        if not responses:
            responses.append(GenerateResponse())
        responses[-1].usage_metadata = usage
    return responses


@final
class OpenAICompatibleGenerator(ContentGenerator):
    """Content generator for any backend speaking the OpenAI chat-completions protocol."""

    def __init__(self, provider: LLMProvider, extra_params: Mapping[str, str] = EMPTY_MAP):
        self._provider = provider
        self._extra_params = dict(extra_params)
        self._request_configs: dict[str, LLMRequestConfig] = {}

    @property
    def auth_type(self) -> AuthType:
        return self._provider.auth_type

    def _request_config(self, model: str) -> LLMRequestConfig:
        if model not in self._request_configs:
            self._request_configs[model] = self._provider.configure_request(model, self._extra_params)
        return self._request_configs[model]

    def _build_payload(
        self, request: LLMRequestConfig, contents: Sequence[Turn], config: GenerationConfig | None
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        config = config or GenerationConfig()
        payload: dict[str, Any] = {  # pyright: ignore[reportExplicitAny]
            "model": request.model_id,
            "messages": turns_to_messages(contents, config.system_instruction),
        }
        if config.temperature is not None:
            payload["temperature"] = config.temperature
        if config.top_p is not None:
            payload["top_p"] = config.top_p
        if config.max_output_tokens is not None:
            payload["max_tokens"] = config.max_output_tokens
        if config.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {"name": tool.name, "description": tool.description, "parameters": tool.parameters},
                }
                for tool in config.tools
            ]
        payload.update(request.extra_kwargs)
        return payload

    @override
    async def generate_content(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> GenerateResponse:
        request = self._request_config(model)
        completion = await request.client.chat.completions.create(**self._build_payload(request, contents, config))  # pyright: ignore[reportAny]
        return completion_to_response(completion)  # pyright: ignore[reportAny]

    @override
    async def generate_content_stream(
        self, model: str, contents: Sequence[Turn], config: GenerationConfig | None = None
    ) -> AsyncGenerator[GenerateResponse, None]:
        request = self._request_config(model)
        stream = await request.client.chat.completions.create(  # pyright: ignore[reportAny]
            **self._build_payload(request, contents, config),
            stream=True,
            stream_options={"include_usage": True},
        )
        return self._iterate_stream(cast("AsyncStream[ChatCompletionChunk]", stream))

    async def _iterate_stream(self, stream: "AsyncStream[ChatCompletionChunk]") -> AsyncGenerator[GenerateResponse, None]:
        tool_buffers: dict[int, _ToolCallBuffer] = {}
        try:
            async for chunk in stream:
                normalized = self._provider.process_chunk(chunk)

                # Tool call arguments arrive in fragments keyed by index
                for delta in normalized.tool_calls:
                    buffer = tool_buffers.setdefault(delta.index, _ToolCallBuffer())
                    buffer.id = delta.id or buffer.id
                    buffer.name += delta.name or ""
                    if delta.arguments:
                        buffer.arguments.append(delta.arguments)

                tool_parts = _flush_tool_calls(tool_buffers) if normalized.finish_reason and tool_buffers else []
                for response in _chunk_responses(normalized, bool(chunk.choices), tool_parts):
                    yield response

            if tool_buffers:
                leftover = Turn(role="model", parts=_flush_tool_calls(tool_buffers))
                yield GenerateResponse(candidates=[Candidate(content=leftover)])
        finally:
            await stream.close()

    @override
    async def count_tokens(self, model: str, contents: Sequence[Turn]) -> CountTokensResponse:
        """
        Estimates the number of tokens using a heuristic (chars / 4); OpenAI-compatible
        servers expose no counting endpoint.
        """
        total_chars = sum(len(part.text or "") for turn in contents for part in turn.parts)
        return CountTokensResponse(total_tokens=total_chars // CHARS_PER_TOKEN)

    @override
    async def embed_content(self, model: str, texts: Sequence[str]) -> EmbedResponse:
        request = self._request_config(model)
        result = await request.client.embeddings.create(model=request.model_id, input=list(texts))
        return EmbedResponse(embeddings=[list(item.embedding) for item in result.data])
