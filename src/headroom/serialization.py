# pyright: standard

from collections.abc import Sequence
from pathlib import Path

import msgspec

from headroom.exceptions import HistoryStructureError
from headroom.fs import atomic_write_text
from headroom.models import Turn


def to_json(obj: object) -> bytes:
    """Encode an object to JSON bytes using msgspec."""
    return msgspec.json.encode(obj)


def from_json[T](type_spec: type[T], data: bytes | str) -> T:
    """Decode JSON data (bytes or str) into the specified type."""
    return msgspec.json.decode(data, type=type_spec)


def convert[T](obj: object, type_spec: type[T]) -> T:
    """Convert an object to the specified type using msgspec."""
    return msgspec.convert(obj, type_spec)


def load_history(path: Path) -> list[Turn]:
    """
    Reads a stored history. A missing file is an empty conversation; a file that
    does not decode as a list of turns is a structural error.
    """
    if not path.is_file():
        return []
    try:
        return from_json(list[Turn], path.read_bytes())
    except msgspec.ValidationError as e:
        raise HistoryStructureError(f"History file {path} has an invalid structure: {e}") from e
    except msgspec.DecodeError as e:
        raise HistoryStructureError(f"History file {path} is not valid JSON: {e}") from e


def save_history(path: Path, history: Sequence[Turn]) -> None:
    atomic_write_text(path, msgspec.json.format(to_json(list(history)), indent=2))
