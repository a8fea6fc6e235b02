import logging
from collections.abc import Sequence
from pathlib import Path
from sys import exit
from typing import Annotated, Any, final, override

import typer
from typer.core import TyperGroup

from headroom.config import is_debug_enabled
from headroom.consts import CLI_VERSION
from headroom.exceptions import HeadroomError

app: typer.Typer


@final
class HeadroomGroup(TyperGroup):
    @override
    def main(  # pyright: ignore[reportAny]
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        windows_expand_args: bool = True,
        **extra: Any,  # pyright: ignore[reportAny, reportExplicitAny]
    ) -> Any:  # pyright: ignore[reportExplicitAny]
        try:
            return super().main(args, prog_name, complete_var, standalone_mode, windows_expand_args, **extra)  #  pyright: ignore[reportAny]
        except HeadroomError as e:
            typer.secho(f"Error: {e.message}", err=True, fg=typer.colors.RED)
            exit(e.exit_code)
        except Exception as e:
            logging.getLogger(__name__).debug("Unhandled error", exc_info=True)
            typer.secho("Unexpected Internal Error", err=True, fg=typer.colors.RED)
            typer.echo(str(e), err=True)
            exit(1)


def configure_logging(debug: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=debug, show_path=debug)],
        force=True,
    )
    if not debug:
        # The SDK logs every HTTP retry on its own
        logging.getLogger("httpx").setLevel(logging.WARNING)


app = typer.Typer(cls=HeadroomGroup, no_args_is_help=True)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"headroom {CLI_VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    debug: Annotated[bool, typer.Option("--debug", help="Log debug output to stderr.")] = False,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit."),
    ] = None,
) -> None:
    """
    A terminal assistant that keeps the conversation as context.
    """
    configure_logging(debug or is_debug_enabled())


@app.command("ask")
def ask(
    cli_prompt_text: Annotated[str | None, typer.Argument(help="The instruction for the AI.")] = None,
    model: Annotated[str | None, typer.Option(help="The model to use, e.g. openai/gpt-4o.")] = None,
    stream: Annotated[bool, typer.Option("--stream/--no-stream", help="Stream the answer as it arrives.")] = True,
    history_file: Annotated[
        Path | None,
        typer.Option("--history", help="JSON file holding the conversation; updated after the answer."),
    ] = None,
    system_prompt: Annotated[str | None, typer.Option(help="The system prompt to guide the AI.")] = None,
    no_memory: Annotated[
        bool, typer.Option("--no-memory", help="Do not load HEADROOM.md context files.")
    ] = False,
) -> None:
    """
    Ask a single question. Piped stdin is used as the prompt, or attached to it.
    """
    from headroom.commands import ask

    ask.ask(cli_prompt_text, model, stream, history_file, system_prompt, no_memory)


@app.command("chat")
def chat(
    model: Annotated[str | None, typer.Option(help="The model to use, e.g. openai/gpt-4o.")] = None,
    history_file: Annotated[
        Path | None,
        typer.Option("--history", help="JSON file holding the conversation; updated after every answer."),
    ] = None,
    system_prompt: Annotated[str | None, typer.Option(help="The system prompt to guide the AI.")] = None,
    no_memory: Annotated[
        bool, typer.Option("--no-memory", help="Do not load HEADROOM.md context files.")
    ] = False,
) -> None:
    """
    Start an interactive conversation.
    """
    from headroom.commands import chat

    chat.chat(model, history_file, system_prompt, no_memory)


@app.command("memory")
def memory(
    show: Annotated[bool, typer.Option("--show", help="Print the combined context text.")] = False,
) -> None:
    """
    Show which HEADROOM.md context files are in use.
    """
    from headroom.commands import memory

    memory.memory(show)


@app.command("history")
def history(
    history_file: Annotated[Path, typer.Argument(help="JSON file holding a stored conversation.")],
    curated: Annotated[
        bool, typer.Option("--curated", help="Only show the exchanges that are sent as context.")
    ] = False,
) -> None:
    """
    Print a stored conversation.
    """
    from headroom.commands import history

    history.history(history_file, curated)


if __name__ == "__main__":
    app()
