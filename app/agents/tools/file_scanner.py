"""In-memory file set utilities used by the agents.

The agents never touch the filesystem during an analysis: they work on the
list of ``FileEntry`` objects handed to the job. This module renders that list
as a directory tree, looks files up by the paths the model asks for and
suggests near matches when a path does not exist. ``load_project_files``
builds such a list from a local directory for command-line runs.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from app.agents.schemas import FileEntry

# Directories to skip while walking a local project
_SKIP_DIRS = {"node_modules", ".git", "bin", "obj", "__pycache__", ".venv", "venv", ".next", "dist"}


def normalize_path(path: str) -> str:
    """Drop a leading './' or '/' so model-supplied paths match stored ones."""
    if path.startswith("./"):
        return path[2:]
    if path.startswith("/"):
        return path[1:]
    return path


def generate_project_tree(files: Iterable[FileEntry], max_depth: int = 10) -> str:
    """Render file paths as a box-drawing tree.

    Paths deeper than ``max_depth`` segments are cut at the last allowed
    directory, which is shown as ``name/...``. Entries keep the order in which
    they first appear in ``files``.
    """
    tree: Dict[str, Optional[dict]] = {}

    for entry in files:
        parts = [p for p in normalize_path(entry.path).split("/") if p]
        current = tree
        for i, part in enumerate(parts[:max_depth]):
            is_file = i == len(parts) - 1
            if is_file:
                current.setdefault(part, None)
                break
            if i == max_depth - 1:
                current.setdefault(f"{part}/...", None)
                break
            child = current.get(part)
            if not isinstance(child, dict):
                child = {}
                current[part] = child
            current = child

    lines: List[str] = []

    def render(node: Dict[str, Optional[dict]], prefix: str) -> None:
        items = list(node.items())
        for index, (name, child) in enumerate(items):
            last = index == len(items) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{name}")
            if child:
                render(child, prefix + ("    " if last else "│   "))

    render(tree, "")
    return "\n".join(lines)


def find_file_content(files: Iterable[FileEntry], file_path: str) -> Optional[str]:
    """Return the content of the file at ``file_path`` or None if absent."""
    wanted = normalize_path(file_path)
    for entry in files:
        if entry.path == file_path or normalize_path(entry.path) == wanted:
            return entry.content
    return None


def find_similar_files(files: Iterable[FileEntry], search_path: str, limit: int = 5) -> List[str]:
    """Paths whose lowercase form contains the searched file name or any of its segments."""
    segments = [s for s in search_path.lower().split("/") if s and s not in {".", ".."}]
    if not segments:
        return []
    name = segments[-1]

    matches: List[str] = []
    for entry in files:
        lower = entry.path.lower()
        if name in lower or any(segment in lower for segment in segments):
            matches.append(entry.path)
            if len(matches) >= limit:
                break
    return matches


def read_file_safe(file_path: str, max_bytes: int = 1024 * 1024) -> str:
    """Safely read up to `max_bytes` bytes from a file and return decoded text.

    If the file cannot be read, return an empty string. Invalid utf-8
    sequences are replaced.
    """
    try:
        with open(file_path, "rb") as fh:
            data = fh.read(max_bytes)
        return data.decode("utf-8", errors="replace")
    except OSError:
        return ""


def load_project_files(project_path: str, max_file_bytes: int = 1024 * 1024) -> List[FileEntry]:
    """Walk a local project directory and return its text files as FileEntry objects.

    Notes:
    - Skips dependency/build directories such as node_modules, .git, bin, obj
    - Skips files larger than ``max_file_bytes`` and files containing NUL bytes
    - Paths are relative to ``project_path`` using forward slashes
    """
    root = Path(project_path)
    if not root.exists() or not root.is_dir():
        raise FileNotFoundError(f"Project path not found or not a directory: {project_path}")

    entries: List[FileEntry] = []
    for dirpath, dirnames, filenames in os.walk(root):
        # mutate dirnames in-place to skip large dirs
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)

        for fname in sorted(filenames):
            full = Path(dirpath) / fname
            try:
                size = full.stat().st_size
            except OSError:
                continue
            if size > max_file_bytes:
                continue
            content = read_file_safe(str(full), max_bytes=max_file_bytes)
            if "\x00" in content:
                continue
            rel = full.relative_to(root).as_posix()
            entries.append(FileEntry(path=rel, content=content, size=size))

    return entries
