"""Structural checks over turns and the curated view of a conversation history."""

from collections.abc import Sequence

import msgspec

from headroom.exceptions import HistoryStructureError
from headroom.models import GenerateResponse, Part, Turn

type PartUnion = str | Part
type MessageInput = PartUnion | Sequence[PartUnion]

VALID_ROLES = ("user", "model")


def is_valid_turn(turn: Turn) -> bool:
    """
    A turn is valid when it has at least one part, no part is empty, and no
    non-thought part carries an empty string as its text.

    Safety-filtered or recitation-blocked outputs come back structurally present
    but semantically empty; those must never reach subsequent requests.
    """
    if not turn.parts:
        return False
    for part in turn.parts:
        if part.is_empty:
            return False
        if not part.thought and part.text is not None and part.text == "":
            return False
    return True


def is_valid_response(response: GenerateResponse) -> bool:
    if not response.candidates:
        return False
    content = response.candidates[0].content
    if content is None:
        return False
    return is_valid_turn(content)


def is_text_turn(turn: Turn | None) -> bool:
    """Model turn whose first part carries non-empty text."""
    return (
        turn is not None
        and turn.role == "model"
        and len(turn.parts) > 0
        and isinstance(turn.parts[0].text, str)
        and turn.parts[0].text != ""
    )


def is_thought_turn(turn: Turn | None) -> bool:
    return turn is not None and turn.role == "model" and len(turn.parts) > 0 and turn.parts[0].thought is True


def is_function_response(turn: Turn) -> bool:
    return turn.role == "user" and all(part.function_response for part in turn.parts)


def validate_history(history: Sequence[Turn]) -> None:
    """
    Raises HistoryStructureError when a turn carries anything but a user or model role.
    """
    for turn in history:
        if turn.role not in VALID_ROLES:
            raise HistoryStructureError(f"Role must be user or model, but got {turn.role}.")


def curate_history(history: Sequence[Turn]) -> list[Turn]:
    """
    Extracts the valid turns from a comprehensive history.

    A run of model turns is kept only when every turn in it is valid. When the
    run is invalid it is dropped together with the user turn that preceded it.
    """
    curated: list[Turn] = []
    length = len(history)
    i = 0
    while i < length:
        if history[i].role == "user":
            curated.append(history[i])
            i += 1
            continue

        model_run: list[Turn] = []
        run_is_valid = True
        while i < length and history[i].role == "model":
            model_run.append(history[i])
            if run_is_valid and not is_valid_turn(history[i]):
                run_is_valid = False
            i += 1

        if run_is_valid:
            curated.extend(model_run)
        elif curated:
            _ = curated.pop()

        # A turn with an unknown role can only come from an unvalidated set_history;
        # skip it so the walk always advances.
        if not model_run:
            i += 1
    return curated


def create_user_turn(message: MessageInput) -> Turn:
    """Builds a user turn from a string, a Part, or a sequence of either."""
    items: Sequence[PartUnion] = [message] if isinstance(message, str | Part) else message
    parts = [Part(text=item) if isinstance(item, str) else item for item in items]
    return Turn(role="user", parts=parts)


def flatten_text(contents: Sequence[Turn]) -> str:
    """Joins the text of every part of every turn, skipping parts without text."""
    return "".join(part.text for turn in contents for part in turn.parts if part.text)


def get_structured_response_from_parts(parts: Sequence[Part]) -> str | None:
    """
    Visible text of the parts, followed by any function calls as indented JSON.
    """
    text = "".join(part.text for part in parts if part.text and not part.thought)
    function_calls = [part.function_call for part in parts if part.function_call]

    calls_json: str | None = None
    if function_calls:
        calls_json = msgspec.json.format(msgspec.json.encode(function_calls), indent=2).decode()

    if text and calls_json:
        return f"{text}\n{calls_json}"
    if text:
        return text
    return calls_json


def get_structured_response(response: GenerateResponse) -> str | None:
    if not response.candidates or response.candidates[0].content is None:
        return None
    return get_structured_response_from_parts(response.candidates[0].content.parts)
