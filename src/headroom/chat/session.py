"""
Chat session that sends messages to the model with the previous conversation as context.

The session keeps two views of the conversation:

- the comprehensive history, every turn ever recorded, including invalid or empty
  model outputs;
- the curated history, derived on demand, holding only the valid exchanges. This is
  what subsequent requests are built from.

Sends on one session are serialized: each send waits for the previous one before it
reads the history. A buffered send holds the session until its turns are recorded; a
streamed send releases it as soon as the stream is open, so its turns are folded
in after the next send may already have started.
"""

import asyncio
import copy
import logging
import time
from collections.abc import AsyncGenerator, Sequence
from types import TracebackType
from typing import Self, final

from headroom.chat.content import (
    MessageInput,
    create_user_turn,
    curate_history,
    get_structured_response,
    get_structured_response_from_parts,
    is_function_response,
    is_text_turn,
    is_thought_turn,
    is_valid_response,
    validate_history,
)
from headroom.config import AuthType
from headroom.llm.providers.base import ContentGenerator
from headroom.models import GenerateResponse, GenerationConfig, Part, Turn, UsageMetadata
from headroom.retry import DEFAULT_RETRY_OPTIONS, RetryOptions, retry_with_backoff
from headroom.telemetry import Telemetry

LOGGER = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _settle(handle: "asyncio.Future[None]") -> None:
    if not handle.done():
        handle.set_result(None)


def _release(previous: "asyncio.Future[None] | None", current: "asyncio.Future[None]") -> None:
    # A send cancelled while still queued must not let later sends overtake the one ahead of it.
    if previous is not None and not previous.done():
        previous.add_done_callback(lambda _: _settle(current))
    else:
        _settle(current)


def _merge_text_turn(target: Turn, source: Turn) -> None:
    first = target.parts[0]
    first.text = (first.text or "") + (source.parts[0].text or "")
    target.parts.extend(source.parts[1:])


class ChatSession:
    def __init__(
        self,
        generator: ContentGenerator,
        model: str,
        *,
        generation_config: GenerationConfig | None = None,
        history: Sequence[Turn] | None = None,
        auth_type: AuthType | None = None,
        telemetry: Telemetry | None = None,
        retry_options: RetryOptions = DEFAULT_RETRY_OPTIONS,
    ):
        initial_history = list(history) if history else []
        validate_history(initial_history)

        self.model: str = model
        self.auth_type: AuthType | None = auth_type
        self._generator: ContentGenerator = generator
        self._generation_config: GenerationConfig = generation_config or GenerationConfig()
        self._history: list[Turn] = initial_history
        self._telemetry: Telemetry = telemetry or Telemetry()
        self._retry_options: RetryOptions = retry_options
        # Completion handle of the most recent send; None when nothing was ever sent.
        self._pending: asyncio.Future[None] | None = None

    def _claim(self) -> tuple["asyncio.Future[None] | None", "asyncio.Future[None]"]:
        """Installs a new handle for the caller and returns it with the one it must wait for."""
        previous = self._pending
        current: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending = current
        return previous, current

    async def send_message(self, message: MessageInput, config: GenerationConfig | None = None) -> GenerateResponse:
        """
        Sends a message and returns the model's response.

        Waits for the previous send on this session to finish before building the
        request. Backend errors are re-raised; a failure while recording the exchange
        into history is logged and the response is still returned.
        """
        previous, current = self._claim()
        try:
            if previous is not None:
                await asyncio.shield(previous)

            user_turn = create_user_turn(message)
            request_contents = [*self.get_history(curated=True), user_turn]
            generation_config = self._generation_config.merged(config)
            self._telemetry.log_api_request(self.model, request_contents)

            start_time = time.monotonic()
            try:
                response = await retry_with_backoff(
                    lambda: self._generator.generate_content(self.model, request_contents, generation_config),
                    auth_type=self.auth_type,
                    options=self._retry_options,
                )
            except Exception as error:
                self._telemetry.log_api_error(self.model, error, _elapsed_ms(start_time))
                raise

            self._telemetry.log_api_response(
                self.model,
                _elapsed_ms(start_time),
                response.usage_metadata,
                get_structured_response(response),
            )

            try:
                self._record_response(user_turn, response)
            except Exception:
                LOGGER.warning("Failed to record the exchange in chat history", exc_info=True)
            return response
        finally:
            _release(previous, current)

    def _record_response(self, user_turn: Turn, response: GenerateResponse) -> None:
        output_content = response.candidates[0].content if response.candidates else None

        # The backend returns the whole tool-calling exchange; only the part beyond
        # what was sent as context is new.
        automatic_history: list[Turn] = []
        if response.automatic_function_calling_history is not None:
            index = len(curate_history(self._history))
            automatic_history = response.automatic_function_calling_history[index:]

        self.record_history(user_turn, [output_content] if output_content else [], automatic_history)

    async def send_message_stream(
        self, message: MessageInput, config: GenerationConfig | None = None
    ) -> "ResponseStream":
        """
        Sends a message and returns the response as a single-pass stream of chunks.

        Waits for the previous send before building the request and releases the
        session once the stream is open. The streamed turns are folded into history
        when the stream is exhausted, so a send started in the meantime does not see
        them. Errors opening the stream are retried and re-raised here; errors
        mid-stream surface while iterating.
        """
        previous, current = self._claim()
        try:
            if previous is not None:
                await asyncio.shield(previous)

            user_turn = create_user_turn(message)
            request_contents = [*self.get_history(curated=True), user_turn]
            generation_config = self._generation_config.merged(config)
            self._telemetry.log_api_request(self.model, request_contents)

            start_time = time.monotonic()
            try:
                chunks = await retry_with_backoff(
                    lambda: self._generator.generate_content_stream(self.model, request_contents, generation_config),
                    auth_type=self.auth_type,
                    options=self._retry_options,
                )
            except Exception as error:
                self._telemetry.log_api_error(self.model, error, _elapsed_ms(start_time))
                raise
        finally:
            _release(previous, current)

        return ResponseStream(self, chunks, user_turn, start_time)

    def _finish_stream(
        self,
        user_turn: Turn,
        output: list[Turn],
        usage: UsageMetadata | None,
        start_time: float,
    ) -> None:
        all_parts: list[Part] = [part for turn in output for part in turn.parts]
        self._telemetry.log_api_response(
            self.model,
            _elapsed_ms(start_time),
            usage,
            get_structured_response_from_parts(all_parts),
        )
        try:
            self.record_history(user_turn, output)
        except Exception:
            LOGGER.warning("Failed to record the streamed exchange in chat history", exc_info=True)

    def record_history(
        self,
        user_turn: Turn,
        model_output: Sequence[Turn],
        automatic_function_calling_history: Sequence[Turn] | None = None,
    ) -> None:
        """
        Appends one exchange, keeping user and model turns alternating.

        Adjacent text turns from the model are merged into one, which collapses
        streamed fragments into a single logical turn.
        """
        user_turn = copy.deepcopy(user_turn)
        model_output = copy.deepcopy(list(model_output))

        substantive_output = [turn for turn in model_output if not is_thought_turn(turn)]

        output_contents: list[Turn] = []
        if substantive_output and all(turn.role is not None for turn in substantive_output):
            output_contents = substantive_output
        elif not substantive_output and model_output:
            # Only thoughts came back; no placeholder turn for those.
            pass
        elif not is_function_response(user_turn):
            # Tool responses may legitimately get no narrative reply; anything else
            # gets an empty model turn so the history keeps alternating.
            output_contents.append(Turn(role="model", parts=[]))

        if automatic_function_calling_history:
            self._history.extend(curate_history(copy.deepcopy(list(automatic_function_calling_history))))
        else:
            self._history.append(user_turn)

        consolidated: list[Turn] = []
        for turn in output_contents:
            if is_thought_turn(turn):
                continue
            if consolidated and is_text_turn(consolidated[-1]) and is_text_turn(turn):
                _merge_text_turn(consolidated[-1], turn)
            else:
                consolidated.append(turn)

        if not consolidated:
            return

        # Merging into existing history is only safe when no tool exchange was spliced in.
        last_entry = self._history[-1] if self._history else None
        if (
            not automatic_function_calling_history
            and last_entry is not None
            and is_text_turn(last_entry)
            and is_text_turn(consolidated[0])
        ):
            _merge_text_turn(last_entry, consolidated.pop(0))
        self._history.extend(consolidated)

    def get_history(self, curated: bool = False) -> list[Turn]:
        """
        Returns a deep copy of the comprehensive history, or of the curated history
        (valid exchanges only) when `curated` is set.
        """
        history = curate_history(self._history) if curated else self._history
        return copy.deepcopy(history)

    def clear_history(self) -> None:
        self._history = []

    def add_history(self, turn: Turn) -> None:
        self._history.append(turn)

    def set_history(self, history: Sequence[Turn]) -> None:
        self._history = list(history)


@final
class ResponseStream:
    """
    Lazy, single-pass stream of response chunks for one send.

    Every chunk is passed through to the consumer. Valid, non-thought chunks are
    accumulated and recorded into the session history once the stream is exhausted.
    A mid-stream error or an early `aclose()` discards what was accumulated.
    """

    def __init__(
        self,
        session: ChatSession,
        chunks: AsyncGenerator[GenerateResponse, None],
        user_turn: Turn,
        start_time: float,
    ):
        self._session = session
        self._chunks = chunks
        self._user_turn = user_turn
        self._start_time = start_time
        self._iterator = self._consume()

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> GenerateResponse:
        return await anext(self._iterator)

    async def aclose(self) -> None:
        await self._iterator.aclose()
        # The consumer may close before ever iterating.
        await self._chunks.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _consume(self) -> AsyncGenerator[GenerateResponse, None]:
        output: list[Turn] = []
        usage: UsageMetadata | None = None
        try:
            async for chunk in self._chunks:
                if chunk.usage_metadata is not None:
                    usage = chunk.usage_metadata
                if is_valid_response(chunk):
                    content = chunk.candidates[0].content
                    if content is not None and not is_thought_turn(content):
                        output.append(content)
                yield chunk
        except Exception as error:
            self._session._telemetry.log_api_error(  # pyright: ignore[reportPrivateUsage]
                self._session.model, error, _elapsed_ms(self._start_time)
            )
            raise
        finally:
            await self._chunks.aclose()

        self._session._finish_stream(self._user_turn, output, usage, self._start_time)  # pyright: ignore[reportPrivateUsage]
