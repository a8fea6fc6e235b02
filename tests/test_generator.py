# pyright: standard

from typing import Any

import pytest
from openai.types.chat import ChatCompletion, ChatCompletionChunk
from pytest_mock import MockerFixture

from headroom.llm.generator import OpenAICompatibleGenerator
from headroom.llm.providers.base import LLMRequestConfig
from headroom.llm.providers.openai import OpenAIProvider
from headroom.llm.providers.openrouter import OpenRouterProvider
from headroom.llm.providers.utils import completion_to_response, parse_standard_openai_chunk, turns_to_messages
from headroom.models import (
    FunctionCall,
    FunctionDeclaration,
    FunctionResponse,
    GenerationConfig,
    Part,
    Turn,
    UsageMetadata,
)
from tests.helpers import function_call_turn, model, thought, user


def make_chunk(
    delta: dict[str, Any] | None = None,
    finish_reason: str | None = None,
    usage: dict[str, Any] | None = None,
) -> ChatCompletionChunk:
    choices = [] if delta is None else [{"index": 0, "delta": delta, "finish_reason": finish_reason}]
    return ChatCompletionChunk.model_validate(
        {
            "id": "chunk",
            "object": "chat.completion.chunk",
            "created": 0,
            "model": "test-model",
            "choices": choices,
            "usage": usage,
        }
    )


USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


class FakeAsyncStream:
    def __init__(self, chunks: list[ChatCompletionChunk]):
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self) -> None:
        self.closed = True


def make_generator(mocker: MockerFixture, provider_cls: type = OpenAIProvider) -> tuple[OpenAICompatibleGenerator, Any]:
    provider = provider_cls()
    client = mocker.MagicMock()
    client.chat.completions.create = mocker.AsyncMock()
    client.embeddings.create = mocker.AsyncMock()
    _ = mocker.patch.object(
        provider, "configure_request", return_value=LLMRequestConfig(client=client, model_id="test-model", extra_kwargs={})
    )
    return OpenAICompatibleGenerator(provider), client


def test_parse_chunk_content_and_reasoning() -> None:
    normalized = parse_standard_openai_chunk(make_chunk({"content": "Hi", "reasoning_content": "hmm"}))

    assert normalized.content == "Hi"
    assert normalized.reasoning == "hmm"
    assert normalized.token_usage is None


def test_parse_chunk_reasoning_details() -> None:
    delta = {
        "reasoning_details": [
            {"type": "reasoning.text", "text": "step one. "},
            {"type": "reasoning.summary", "summary": "summary"},
        ]
    }
    assert parse_standard_openai_chunk(make_chunk(delta)).reasoning == "step one. summary"


def test_parse_usage_only_chunk() -> None:
    normalized = parse_standard_openai_chunk(make_chunk(usage=USAGE))

    assert normalized.content is None
    assert normalized.token_usage == UsageMetadata(prompt_token_count=10, candidates_token_count=5, total_token_count=15)


def test_openrouter_chunk_carries_cost() -> None:
    normalized = OpenRouterProvider().process_chunk(make_chunk(usage={**USAGE, "cost": 0.25}))

    assert normalized.cost == 0.25


def test_turns_to_messages() -> None:
    contents = [
        user("what is the weather?"),
        Turn(
            role="model",
            parts=[Part(text="pondering", thought=True), Part(function_call=FunctionCall(name="weather", id="c1"))],
        ),
        Turn(
            role="user",
            parts=[Part(function_response=FunctionResponse(name="weather", response={"temp": 20}, id="c1"))],
        ),
        model("It is 20 degrees."),
    ]

    messages = turns_to_messages(contents, "be brief")

    assert messages == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "what is the weather?"},
        {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "weather", "arguments": "{}"}}],
        },
        {"role": "tool", "tool_call_id": "c1", "content": '{"temp":20}'},
        {"role": "assistant", "content": "It is 20 degrees."},
    ]


def test_turns_to_messages_joins_consecutive_model_turns() -> None:
    messages = turns_to_messages([user("hi"), model("Let me check."), function_call_turn("lookup")])

    assert len(messages) == 2
    assert messages[1]["content"] == "Let me check."
    assert messages[1]["tool_calls"][0]["function"]["name"] == "lookup"


def test_turns_to_messages_skips_empty_model_turns() -> None:
    messages = turns_to_messages([user("a"), Turn(role="model", parts=[]), thought("x"), user("b")])

    assert messages == [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}]


def test_completion_to_response() -> None:
    completion = ChatCompletion.model_validate(
        {
            "id": "c",
            "object": "chat.completion",
            "created": 0,
            "model": "test-model",
            "choices": [
                {
                    "index": 0,
                    "finish_reason": "tool_calls",
                    "message": {
                        "role": "assistant",
                        "content": "Checking.",
                        "tool_calls": [
                            {
                                "id": "call_1",
                                "type": "function",
                                "function": {"name": "lookup", "arguments": '{"q": "x"}'},
                            }
                        ],
                    },
                }
            ],
            "usage": USAGE,
        }
    )

    response = completion_to_response(completion)

    assert response.text == "Checking."
    assert response.function_calls == [FunctionCall(name="lookup", args={"q": "x"}, id="call_1")]
    assert response.usage_metadata is not None
    assert response.usage_metadata.total_token_count == 15
    assert response.candidates[0].finish_reason == "tool_calls"


@pytest.mark.asyncio
async def test_generate_content_builds_payload(mocker: MockerFixture) -> None:
    generator, client = make_generator(mocker)
    client.chat.completions.create.return_value = ChatCompletion.model_validate(
        {
            "id": "c",
            "object": "chat.completion",
            "created": 0,
            "model": "test-model",
            "choices": [{"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": "ok"}}],
        }
    )
    config = GenerationConfig(
        system_instruction="sys",
        temperature=0.5,
        max_output_tokens=100,
        tools=[FunctionDeclaration(name="lookup", parameters={"type": "object"})],
    )

    response = await generator.generate_content("test-model", [user("hi")], config)

    assert response.text == "ok"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["temperature"] == 0.5
    assert kwargs["max_tokens"] == 100
    assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
    assert kwargs["tools"][0]["function"]["name"] == "lookup"


@pytest.mark.asyncio
async def test_stream_yields_text_thoughts_tool_calls_and_usage(mocker: MockerFixture) -> None:
    # GIVEN a raw stream with reasoning, text, fragmented tool call arguments and usage
    generator, client = make_generator(mocker)
    raw = FakeAsyncStream(
        [
            make_chunk({"reasoning_content": "thinking"}),
            make_chunk({"content": "Hel"}),
            make_chunk({"content": "lo"}),
            make_chunk({"tool_calls": [{"index": 0, "id": "t1", "function": {"name": "lookup", "arguments": '{"q":'}}]}),
            make_chunk({"tool_calls": [{"index": 0, "function": {"arguments": ' "x"}'}}]}),
            make_chunk({}, finish_reason="tool_calls"),
            make_chunk(usage=USAGE),
        ]
    )
    client.chat.completions.create.return_value = raw

    # WHEN the stream is consumed
    stream = await generator.generate_content_stream("test-model", [user("hi")])
    responses = [response async for response in stream]

    # THEN reasoning arrives as a thought turn
    first = responses[0].candidates[0].content
    assert first == thought("thinking")
    # AND text arrives in order
    assert [r.text for r in responses if r.text] == ["Hel", "lo"]
    # AND the tool call is assembled once the model finishes
    calls = [call for r in responses for call in r.function_calls]
    assert calls == [FunctionCall(name="lookup", args={"q": "x"}, id="t1")]
    # AND the last response carries the usage
    assert responses[-1].usage_metadata == UsageMetadata(
        prompt_token_count=10, candidates_token_count=5, total_token_count=15
    )
    # AND the raw stream was closed
    assert raw.closed
    assert client.chat.completions.create.call_args.kwargs["stream_options"] == {"include_usage": True}


@pytest.mark.asyncio
async def test_count_tokens_estimate(mocker: MockerFixture) -> None:
    generator, _ = make_generator(mocker)

    result = await generator.count_tokens("test-model", [user("a" * 40)])

    assert result.total_tokens == 10


@pytest.mark.asyncio
async def test_embed_content(mocker: MockerFixture) -> None:
    generator, client = make_generator(mocker)
    item = mocker.MagicMock()
    item.embedding = [0.1, 0.2]
    client.embeddings.create.return_value = mocker.MagicMock(data=[item])

    result = await generator.embed_content("test-model", ["hello"])

    assert result.embeddings == [[0.1, 0.2]]
    client.embeddings.create.assert_awaited_once_with(model="test-model", input=["hello"])
