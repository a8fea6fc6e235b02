import os
from pathlib import Path
from tempfile import mkstemp

from headroom.consts import SETTINGS_DIR_NAME


def read_file_safe(path: Path) -> str | None:
    """
    Safely reads a file as UTF-8 text, returning None on OSError or UnicodeDecodeError.
    """
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def atomic_write_text(path: Path, text: str | bytes, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = mkstemp(suffix=path.suffix, prefix=path.name + ".tmp", dir=path.parent)
    tmp_path = Path(tmp)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            match text:
                case str():
                    _ = f.write(text)
                case bytes():
                    _ = f.write(text.decode(encoding))

        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def get_user_settings_dir() -> Path:
    return Path.home() / SETTINGS_DIR_NAME


def find_project_root(start: Path) -> Path:
    """Nearest ancestor (inclusive) holding a `.git` entry; `start` itself when there is none."""
    start = start.resolve()
    for candidate in [start, *start.parents]:
        if (candidate / ".git").exists():
            return candidate
    return start
