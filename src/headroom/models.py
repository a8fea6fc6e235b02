from pathlib import Path
from typing import Any, Literal, TypedDict

from msgspec import Struct, field, structs

type Role = Literal["user", "model"]


class FunctionCall(Struct, omit_defaults=True):
    name: str
    args: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]
    id: str | None = None


class FunctionResponse(Struct, omit_defaults=True):
    name: str
    response: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]
    id: str | None = None


class Blob(Struct, omit_defaults=True):
    mime_type: str
    data: str


class Part(Struct, omit_defaults=True):
    """
    One payload unit of a turn. Exactly one of the payload fields is normally set;
    `thought` marks a text part as internal reasoning.
    """

    text: str | None = None
    thought: bool | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None
    inline_data: Blob | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.text is None
            and self.thought is None
            and self.function_call is None
            and self.function_response is None
            and self.inline_data is None
        )


class Turn(Struct, omit_defaults=True):
    # Kept as a plain string so malformed roles survive decoding and are
    # rejected by history validation instead.
    role: str | None = None
    parts: list[Part] = field(default_factory=list)


class UsageMetadata(Struct, frozen=True, omit_defaults=True):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0
    cached_content_token_count: int | None = None
    thoughts_token_count: int | None = None
    cost: float | None = None


class Candidate(Struct, omit_defaults=True):
    content: Turn | None = None
    finish_reason: str | None = None


class GenerateResponse(Struct, omit_defaults=True):
    candidates: list[Candidate] = field(default_factory=list)
    usage_metadata: UsageMetadata | None = None
    automatic_function_calling_history: list[Turn] | None = None
    model_version: str | None = None

    @property
    def text(self) -> str | None:
        """Concatenated visible text of the first candidate, skipping thoughts."""
        if not self.candidates or self.candidates[0].content is None:
            return None
        texts = [
            part.text
            for part in self.candidates[0].content.parts
            if part.text is not None and not part.thought
        ]
        return "".join(texts) if texts else None

    @property
    def function_calls(self) -> list[FunctionCall]:
        if not self.candidates or self.candidates[0].content is None:
            return []
        return [part.function_call for part in self.candidates[0].content.parts if part.function_call]


class FunctionDeclaration(Struct, omit_defaults=True):
    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)  # pyright: ignore[reportExplicitAny]


class GenerationConfig(Struct, omit_defaults=True):
    system_instruction: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None
    tools: list[FunctionDeclaration] | None = None

    def merged(self, override: "GenerationConfig | None") -> "GenerationConfig":
        """Returns a copy where every field set on `override` wins."""
        if override is None:
            return structs.replace(self)
        changes = {
            name: value
            for name in override.__struct_fields__
            if (value := getattr(override, name)) is not None  # pyright: ignore[reportAny]
        }
        return structs.replace(self, **changes)  # pyright: ignore[reportAny]


class CountTokensResponse(Struct, frozen=True):
    total_tokens: int


class EmbedResponse(Struct, frozen=True):
    embeddings: list[list[float]]


class ContextMemory(Struct, frozen=True):
    text: str
    file_count: int
    paths: list[Path] = field(default_factory=list)


class LLMChatMessage(TypedDict, total=False):
    role: Literal["user", "assistant", "system", "tool"]
    content: str | None
    tool_calls: list[dict[str, Any]]  # pyright: ignore[reportExplicitAny]
    tool_call_id: str
    reasoning_content: str
