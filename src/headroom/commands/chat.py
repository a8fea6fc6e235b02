import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from headroom.chat.session import ChatSession
from headroom.commands.ask import exchange
from headroom.config import resolve_model_name
from headroom.console import display_usage_summary, format_history, is_terminal, print_markdown
from headroom.error_parsing import parse_and_format_api_error
from headroom.exceptions import HeadroomError
from headroom.serialization import load_history, save_history
from headroom.session_factory import create_chat_session

LOGGER = logging.getLogger(__name__)

QUIT_COMMANDS = ("/quit", "/exit")
HELP_TEXT = "Commands: /history shows the conversation, /clear starts over, /quit leaves."


async def _chat_loop(session: ChatSession, model: str, history_file: Path | None, console: Console) -> None:
    while True:
        try:
            line = Prompt.ask("[bold blue]You[/bold blue]", console=console)
        except EOFError:
            return

        message = line.strip()
        match message:
            case "":
                continue
            case command if command in QUIT_COMMANDS:
                return
            case "/help":
                console.print(HELP_TEXT)
                continue
            case "/history":
                history = session.get_history()
                print_markdown(format_history(history) if history else "_(no history yet)_")
                continue
            case "/clear":
                session.clear_history()
                console.print("[dim]History cleared.[/dim]")
                continue
            case _:
                pass

        try:
            answer, usage = await exchange(session, message, stream=True, model=model)
        except HeadroomError:
            raise
        except Exception as e:
            # Keep the conversation going; the failed exchange is not recorded
            LOGGER.debug("Chat exchange failed", exc_info=True)
            console.print(f"[red]{escape(parse_and_format_api_error(e, session.auth_type))}[/red]")
            continue

        if not is_terminal():
            print(answer)
        display_usage_summary(usage)

        if history_file:
            save_history(history_file, session.get_history())


def chat(model: str | None, history_file: Path | None, system_prompt: str | None, no_memory: bool) -> None:
    model_name = resolve_model_name(model)
    history = load_history(history_file) if history_file else []
    session = create_chat_session(model_name, system_prompt=system_prompt, use_memory=not no_memory, history=history)

    console = Console()
    console.print(f"[dim]Chatting with {model_name}. {HELP_TEXT}[/dim]")
    asyncio.run(_chat_loop(session, model_name, history_file, console))
