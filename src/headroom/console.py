"""UI rendering, display, and terminal utilities."""

import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING

import msgspec
import regex

from headroom.chat.content import get_structured_response_from_parts
from headroom.models import Turn, UsageMetadata

if TYPE_CHECKING:
    from headroom.chat.session import ResponseStream


def format_tokens(tokens: int) -> str:
    """Formats token counts for display, using 'k' for thousands."""
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}k"
    return str(tokens)


def is_terminal() -> bool:
    """Checks if stdout is a TTY."""
    return sys.stdout.isatty()


def is_input_terminal() -> bool:
    """Checks if stdin is a TTY."""
    return sys.stdin.isatty()


def extract_reasoning_header(reasoning_buffer: str) -> str | None:
    """Extracts the last Markdown header (#) or bold (**text**) from the reasoning buffer for the spinner."""
    matches = list(
        regex.finditer(
            r"(?:^#{1,6}\s+(?P<header>.+)$)|(?:^\*\*\s*(?P<bold>.+?)\s*\*\*)",
            reasoning_buffer,
            regex.MULTILINE,
        )
    )
    if matches:
        last_match = matches[-1]
        text = last_match.group("header") or last_match.group("bold")
        if text:
            return text.strip()
    return None


def format_usage_summary(usage: UsageMetadata) -> str:
    prompt_tokens_str = format_tokens(usage.prompt_token_count)
    if usage.cached_content_token_count:
        prompt_tokens_str += f" ({format_tokens(usage.cached_content_token_count)} cached)"

    completion_tokens_str = format_tokens(usage.candidates_token_count)
    if usage.thoughts_token_count:
        completion_tokens_str += f" ({format_tokens(usage.thoughts_token_count)} reasoning)"

    summary = f"Tokens: {prompt_tokens_str} sent, {completion_tokens_str} received."

    if usage.cost is not None:
        summary += f" Cost: ${usage.cost:.4f}."
    return summary


def display_usage_summary(usage: UsageMetadata | None) -> None:
    """Displays token/cost information to stderr (or formatted TTY)."""
    if usage is None:
        return

    info_str = format_usage_summary(usage)
    if is_terminal():
        from rich.console import Console

        Console().print(f"\n[dim]---[/dim]\n[dim]{info_str}[/dim]")
    else:
        print(info_str, file=sys.stderr)


def print_markdown(text: str) -> None:
    if is_terminal():
        from rich.console import Console
        from rich.markdown import Markdown

        Console().print(Markdown(text))
    else:
        print(text)


async def render_stream(stream: "ResponseStream", model: str) -> tuple[str, UsageMetadata | None]:
    """
    Consumes a response stream, showing a spinner (titled after the latest reasoning
    header) until text arrives and rendering the text live as Markdown on a TTY.
    Returns the visible text and the reported usage.
    """
    from rich.console import Console
    from rich.live import Live
    from rich.markdown import Markdown
    from rich.spinner import Spinner

    text_buffer = ""
    reasoning_buffer = ""
    usage: UsageMetadata | None = None

    live: Live | None = None
    rich_spinner = Spinner("dots", f"Generating response ({model})...")
    if is_terminal():
        live = Live(console=Console(), auto_refresh=True, vertical_overflow="visible")
        live.start()
        live.update(rich_spinner, refresh=True)

    try:
        async with stream:
            async for chunk in stream:
                if chunk.usage_metadata is not None:
                    usage = chunk.usage_metadata
                if not chunk.candidates or chunk.candidates[0].content is None:
                    continue

                for part in chunk.candidates[0].content.parts:
                    if not part.text:
                        continue
                    if part.thought:
                        if not text_buffer:
                            reasoning_buffer += part.text
                            if live and (header := extract_reasoning_header(reasoning_buffer)):
                                rich_spinner.update(text=header)
                        continue
                    text_buffer += part.text
                    if live:
                        live.update(Markdown(text_buffer), refresh=True)
    finally:
        if live:
            live.stop()

    return text_buffer, usage


def format_history(history: Sequence[Turn]) -> str:
    """Renders turns as Markdown with a role marker before each one."""
    blocks: list[str] = []
    for turn in history:
        body_parts: list[str] = []
        if structured := get_structured_response_from_parts(turn.parts):
            body_parts.append(structured)
        responses = [part.function_response for part in turn.parts if part.function_response]
        if responses:
            body_parts.append(msgspec.json.format(msgspec.json.encode(responses), indent=2).decode())
        if any(part.thought for part in turn.parts):
            body_parts.append("_(reasoning omitted)_")

        body = "\n".join(body_parts) if body_parts else "_(empty)_"
        blocks.append(f"<!-- {turn.role} -->\n{body}")
    return "\n\n".join(blocks)
