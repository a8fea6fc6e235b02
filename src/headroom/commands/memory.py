from pathlib import Path

from rich.console import Console

from headroom.memory_discovery import format_context_summary, load_hierarchical_memory


def memory(show: bool) -> None:
    """Prints which context files are in use and, with `show`, their combined text."""
    current_dir = Path.cwd()
    context = load_hierarchical_memory(current_dir)
    console = Console()

    console.print(format_context_summary(context))
    for path in context.paths:
        console.print(f"  [dim]{path}[/dim]")

    if show and context.text:
        console.print()
        # Context files are arbitrary Markdown; print them without markup processing
        console.print(context.text, markup=False, highlight=False)
