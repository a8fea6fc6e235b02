import logging
import os
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import msgspec

from headroom.exceptions import ConfigurationError
from headroom.llm.providers.base import NormalizedChunk, ToolCallDelta
from headroom.models import (
    Candidate,
    FunctionCall,
    GenerateResponse,
    LLMChatMessage,
    Part,
    Turn,
    UsageMetadata,
)

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion, ChatCompletionChunk
    from openai.types.completion_usage import CompletionUsage

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ReasoningSummary(Protocol):
    type: str
    summary: str


@runtime_checkable
class ReasoningText(Protocol):
    type: str
    text: str


def build_usage_metadata(usage: "CompletionUsage") -> UsageMetadata:
    # Pydantic models from OpenAI SDK, but safeguard access
    prompt_details = getattr(usage, "prompt_tokens_details", None)
    completion_details = getattr(usage, "completion_tokens_details", None)

    cached_tokens: int | None = None
    reasoning_tokens: int | None = None
    cost: float | None = None

    if prompt_details:
        cached_tokens = getattr(prompt_details, "cached_tokens", None)  # pyright: ignore[reportAny]

    if completion_details:
        reasoning_tokens = getattr(completion_details, "reasoning_tokens", None)  # pyright: ignore[reportAny]

    # OpenRouter custom field 'cost' injected into the usage object
    cost_val = getattr(usage, "cost", None)
    if isinstance(cost_val, float | int):
        cost = float(cost_val)

    return UsageMetadata(
        prompt_token_count=usage.prompt_tokens,
        candidates_token_count=usage.completion_tokens,
        total_token_count=usage.total_tokens,
        cached_content_token_count=cached_tokens,
        thoughts_token_count=reasoning_tokens,
        cost=cost,
    )


def get_env_var_or_fail(var_name: str, provider_display_name: str) -> str:
    val = os.getenv(var_name)
    if not val:
        raise ConfigurationError(f"{provider_display_name} requires the environment variable '{var_name}' to be set.")
    return val


def _extract_reasoning(source: object) -> str | None:
    reasoning: str | None = None
    for attr in ("reasoning", "reasoning_content"):
        match getattr(source, attr, None):
            case str(value) if value:
                reasoning = value
                break
            case _:  # pyright: ignore[reportAny]
                pass

    if isinstance(details := getattr(source, "reasoning_details", None), list):
        for detail in details:  # pyright: ignore[reportAny]
            # Undeclared SDK fields stay plain dicts
            match detail:
                case ReasoningText(type="reasoning.text", text=str(text)) | {"type": "reasoning.text", "text": str(text)}:
                    reasoning = (reasoning or "") + text
                case ReasoningSummary(type="reasoning.summary", summary=str(summary)) | {
                    "type": "reasoning.summary",
                    "summary": str(summary),
                }:
                    reasoning = (reasoning or "") + summary
                case _:  # pyright: ignore[reportAny]
                    pass
    return reasoning


def parse_standard_openai_chunk(chunk: "ChatCompletionChunk") -> NormalizedChunk:
    token_usage: UsageMetadata | None = None

    content: str | None = None
    reasoning: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] = ()
    finish_reason: str | None = None

    if chunk.choices:
        choice = chunk.choices[0]
        delta = choice.delta
        content = delta.content
        finish_reason = choice.finish_reason
        reasoning = _extract_reasoning(delta)

        if delta.tool_calls:
            tool_calls = tuple(
                ToolCallDelta(
                    index=call.index,
                    id=call.id,
                    name=call.function.name if call.function else None,
                    arguments=call.function.arguments if call.function else None,
                )
                for call in delta.tool_calls
            )

    # Usage typically arrives in a final chunk without choices
    if chunk.usage:
        token_usage = build_usage_metadata(chunk.usage)

    return NormalizedChunk(
        content=content,
        reasoning=reasoning,
        tool_calls=tool_calls,
        finish_reason=finish_reason,
        token_usage=token_usage,
        cost=None,
    )


def decode_arguments(raw: str | None) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
    if not raw:
        return {}
    try:
        decoded: object = msgspec.json.decode(raw)
    except msgspec.DecodeError:
        LOGGER.debug("Tool call arguments are not valid JSON: %r", raw)
        return {}
    return decoded if isinstance(decoded, dict) else {"value": decoded}  # pyright: ignore[reportUnknownVariableType]


def completion_to_response(completion: "ChatCompletion") -> GenerateResponse:
    """Maps a buffered chat completion onto a single-candidate response."""
    usage = build_usage_metadata(completion.usage) if completion.usage else None
    if not completion.choices:
        return GenerateResponse(usage_metadata=usage, model_version=completion.model)

    choice = completion.choices[0]
    message = choice.message
    parts: list[Part] = []
    if message.content is not None:
        parts.append(Part(text=message.content))
    for call in message.tool_calls or []:
        function = getattr(call, "function", None)
        if function is None:
            continue
        parts.append(
            Part(
                function_call=FunctionCall(
                    name=function.name,  # pyright: ignore[reportAny]
                    args=decode_arguments(function.arguments),  # pyright: ignore[reportAny]
                    id=call.id,
                )
            )
        )

    # Reasoning only becomes part of the turn when nothing else was produced.
    if not parts and (reasoning := _extract_reasoning(message)):
        parts.append(Part(text=reasoning, thought=True))

    return GenerateResponse(
        candidates=[Candidate(content=Turn(role="model", parts=parts), finish_reason=choice.finish_reason)],
        usage_metadata=usage,
        model_version=completion.model,
    )


def _encode_json(value: object) -> str:
    return msgspec.json.encode(value).decode()


def turns_to_messages(contents: Sequence[Turn], system_instruction: str | None = None) -> list[LLMChatMessage]:
    """
    Converts turns into chat-completion messages. Thought parts and inline payloads
    are not sent; function responses become `tool` messages.
    """
    messages: list[LLMChatMessage] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})

    for turn in contents:
        text = "".join(part.text for part in turn.parts if part.text and not part.thought)
        if turn.role == "user":
            for part in turn.parts:
                if part.function_response:
                    messages.append(
                        {
                            "role": "tool",
                            "tool_call_id": part.function_response.id or part.function_response.name,
                            "content": _encode_json(part.function_response.response),
                        }
                    )
            if text:
                messages.append({"role": "user", "content": text})
        else:
            tool_calls = [
                {
                    "id": part.function_call.id or part.function_call.name,
                    "type": "function",
                    "function": {"name": part.function_call.name, "arguments": _encode_json(part.function_call.args)},
                }
                for part in turn.parts
                if part.function_call
            ]
            if not text and not tool_calls:
                continue
            # Streamed text and tool calls are recorded as separate model turns.
            if messages and messages[-1].get("role") == "assistant":
                previous = messages[-1]
                if text:
                    previous["content"] = (previous.get("content") or "") + text
                if tool_calls:
                    previous["tool_calls"] = [*previous.get("tool_calls", []), *tool_calls]
                continue
            message: LLMChatMessage = {"role": "assistant", "content": text or None}
            if tool_calls:
                message["tool_calls"] = tool_calls
            messages.append(message)
    return messages
