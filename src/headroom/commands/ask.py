import asyncio
import sys
from pathlib import Path

from headroom.chat.session import ChatSession
from headroom.config import resolve_model_name
from headroom.console import display_usage_summary, is_input_terminal, is_terminal, print_markdown, render_stream
from headroom.error_parsing import parse_and_format_api_error
from headroom.exceptions import HeadroomError, InvalidInputError, ProviderError
from headroom.models import UsageMetadata
from headroom.serialization import load_history, save_history
from headroom.session_factory import create_chat_session


def build_prompt(cli_prompt_text: str | None, piped_input: str | None) -> str:
    """
    Combines the CLI prompt and piped stdin. With both, the piped content is
    attached below the instruction.
    """
    if cli_prompt_text and piped_input:
        return f"{cli_prompt_text}\n\n{piped_input}"
    if piped_input:
        return piped_input
    if cli_prompt_text:
        return cli_prompt_text

    from rich.prompt import Prompt

    prompt = Prompt.ask("Prompt")
    if not prompt.strip():
        raise InvalidInputError("Prompt is required.")
    return prompt


async def exchange(session: ChatSession, prompt: str, stream: bool, model: str) -> tuple[str, UsageMetadata | None]:
    """Sends one message and returns the visible answer and its usage."""
    if stream:
        return await render_stream(await session.send_message_stream(prompt), model)

    response = await session.send_message(prompt)
    return response.text or "", response.usage_metadata


def ask(
    cli_prompt_text: str | None,
    model: str | None,
    stream: bool,
    history_file: Path | None,
    system_prompt: str | None,
    no_memory: bool,
) -> None:
    piped_input = sys.stdin.read() if not is_input_terminal() else None
    prompt = build_prompt(cli_prompt_text, piped_input)
    if not prompt.strip():
        raise InvalidInputError("Prompt is required.")

    model_name = resolve_model_name(model)
    history = load_history(history_file) if history_file else []
    session = create_chat_session(model_name, system_prompt=system_prompt, use_memory=not no_memory, history=history)

    try:
        answer, usage = asyncio.run(exchange(session, prompt, stream, model_name))
    except HeadroomError:
        raise
    except Exception as e:
        raise ProviderError(parse_and_format_api_error(e, session.auth_type)) from e

    if history_file:
        save_history(history_file, session.get_history())

    # A live render already showed the streamed answer
    if not (stream and is_terminal()):
        print_markdown(answer)
    if not is_terminal():
        _ = sys.stdout.flush()

    display_usage_summary(usage)
