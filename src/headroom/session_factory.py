import logging
from collections.abc import Sequence
from pathlib import Path

from headroom.chat.session import ChatSession
from headroom.config import get_telemetry_outfile
from headroom.llm.router import create_content_generator
from headroom.memory_discovery import load_hierarchical_memory
from headroom.models import GenerationConfig, Turn
from headroom.telemetry import JsonlTelemetrySink, LoggingTelemetrySink, Telemetry, TelemetrySink
from headroom.user_id import get_persistent_user_id

LOGGER = logging.getLogger(__name__)


def build_telemetry() -> Telemetry:
    sinks: list[TelemetrySink] = [LoggingTelemetrySink()]
    if outfile := get_telemetry_outfile():
        sinks.append(JsonlTelemetrySink(Path(outfile), get_persistent_user_id()))
    return Telemetry(sinks)


def build_system_instruction(system_prompt: str | None, use_memory: bool, current_dir: Path) -> str | None:
    """Joins the system prompt and the discovered context files; None when both are empty."""
    sections: list[str] = []
    if system_prompt:
        sections.append(system_prompt)
    if use_memory:
        memory = load_hierarchical_memory(current_dir)
        if memory.text:
            sections.append(memory.text)
    return "\n\n".join(sections) or None


def create_chat_session(
    model: str,
    *,
    system_prompt: str | None = None,
    use_memory: bool = True,
    history: Sequence[Turn] = (),
    current_dir: Path | None = None,
) -> ChatSession:
    """Builds a session for a full model string such as `openai/gpt-4o+reasoning_effort=low`."""
    generator, model_id = create_content_generator(model)
    system_instruction = build_system_instruction(system_prompt, use_memory, current_dir or Path.cwd())
    LOGGER.debug("Creating chat session for %s (system instruction: %d chars)", model, len(system_instruction or ""))

    return ChatSession(
        generator,
        model_id,
        generation_config=GenerationConfig(system_instruction=system_instruction),
        history=history,
        auth_type=generator.auth_type,
        telemetry=build_telemetry(),
    )
