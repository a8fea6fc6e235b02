"""
Discovery of HEADROOM.md context files.

Files are collected from the least to the most specific location so that later
instructions can refine earlier ones:

1. the global file in ~/.headroom
2. every directory from the project root down to the current directory
3. subdirectories below the current directory, breadth first
"""

import logging
import os
from collections import deque
from collections.abc import Iterable, Sequence
from pathlib import Path

from headroom.consts import CONTEXT_FILE_NAME, SETTINGS_DIR_NAME
from headroom.fs import find_project_root, get_user_settings_dir, read_file_safe
from headroom.models import ContextMemory

LOGGER = logging.getLogger(__name__)

MAX_SCANNED_DIRS = 200
IGNORED_DIRS = frozenset(
    {
        SETTINGS_DIR_NAME,
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "node_modules",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".tox",
        "dist",
        "build",
    }
)


def _upward_dirs(current_dir: Path, project_root: Path) -> list[Path]:
    """Directories from the project root down to `current_dir`, inclusive."""
    if project_root not in current_dir.parents:
        return [current_dir]

    dirs = [current_dir]
    for parent in current_dir.parents:
        dirs.append(parent)
        if parent == project_root:
            break
    return list(reversed(dirs))


def _downward_files(current_dir: Path, file_name: str, max_dirs: int) -> list[Path]:
    found: list[Path] = []
    queue: deque[Path] = deque([current_dir])
    scanned = 0

    while queue and scanned < max_dirs:
        directory = queue.popleft()
        scanned += 1
        # The current directory's own file belongs to the upward walk
        if directory != current_dir and (candidate := directory / file_name).is_file():
            found.append(candidate)

        try:
            entries = sorted(directory.iterdir())
        except OSError:
            LOGGER.debug("Cannot list %s while scanning for context files", directory)
            continue

        queue.extend(
            entry
            for entry in entries
            if entry.is_dir() and not entry.is_symlink() and entry.name not in IGNORED_DIRS
        )

    if queue:
        LOGGER.debug("Stopped scanning for context files after %d directories", max_dirs)

    return sorted(found, key=lambda path: (len(path.relative_to(current_dir).parts), str(path)))


def discover_context_files(
    current_dir: Path,
    *,
    project_root: Path | None = None,
    extension_paths: Iterable[Path] = (),
    file_name: str = CONTEXT_FILE_NAME,
    max_dirs: int = MAX_SCANNED_DIRS,
) -> list[Path]:
    current_dir = current_dir.resolve()
    project_root = (project_root or find_project_root(current_dir)).resolve()

    candidates: list[Path] = [get_user_settings_dir() / file_name]
    candidates.extend(directory / file_name for directory in _upward_dirs(current_dir, project_root))
    candidates.extend(_downward_files(current_dir, file_name, max_dirs))
    candidates.extend(extension_paths)

    paths: list[Path] = []
    seen: set[Path] = set()
    for candidate in candidates:
        resolved = candidate.resolve()
        if resolved in seen or not resolved.is_file():
            continue
        seen.add(resolved)
        paths.append(resolved)
    return paths


def format_context_block(path: Path, content: str, current_dir: Path) -> str:
    display_path = os.path.relpath(path, current_dir)
    return f"--- Context from: {display_path} ---\n{content.strip()}\n--- End of Context from: {display_path} ---"


def load_hierarchical_memory(
    current_dir: Path,
    *,
    project_root: Path | None = None,
    extension_paths: Sequence[Path] = (),
) -> ContextMemory:
    """
    Reads every discovered context file and joins them into one instruction text.
    Unreadable files are skipped.
    """
    current_dir = current_dir.resolve()
    blocks: list[str] = []
    loaded: list[Path] = []
    for path in discover_context_files(current_dir, project_root=project_root, extension_paths=extension_paths):
        content = read_file_safe(path)
        if content is None:
            LOGGER.debug("Skipping unreadable context file %s", path)
            continue
        blocks.append(format_context_block(path, content, current_dir))
        loaded.append(path)

    LOGGER.debug("Loaded %d context file(s)", len(loaded))
    return ContextMemory(text="\n\n".join(blocks), file_count=len(loaded), paths=loaded)


def format_context_summary(memory: ContextMemory, file_name: str = CONTEXT_FILE_NAME) -> str:
    if memory.file_count == 0:
        return f"No {file_name} files in use"
    noun = "file" if memory.file_count == 1 else "files"
    return f"Using {memory.file_count} {file_name} {noun}"
