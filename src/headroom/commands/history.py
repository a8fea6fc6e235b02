from pathlib import Path

from headroom.chat.content import curate_history, validate_history
from headroom.console import format_history, print_markdown
from headroom.exceptions import InvalidInputError
from headroom.serialization import load_history


def history(history_file: Path, curated: bool) -> None:
    if not history_file.is_file():
        raise InvalidInputError(f"History file not found: {history_file}")

    turns = load_history(history_file)
    validate_history(turns)
    if curated:
        turns = curate_history(turns)

    if not turns:
        print_markdown("_(no history)_")
        return
    print_markdown(format_history(turns))
