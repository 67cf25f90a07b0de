from __future__ import annotations

from pathlib import Path
from typing import Iterable, Set

from dtdscan.parsing.treesitter import language_for_path


IGNORED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vs",
    ".vscode",
    "node_modules",
    "packages",
    "dist",
    "build",
    "bin",
    "obj",
    "out",
}


def iter_source_files(root: str, enabled_languages: Set[str]) -> Iterable[str]:
    """Yield C#/VB source files under ``root`` in a stable order."""
    root_path = Path(root)
    if root_path.is_file():
        if language_for_path(str(root_path)) in enabled_languages:
            yield str(root_path)
        return
    for path in sorted(root_path.rglob("*")):
        if not path.is_file():
            continue
        if any(part in IGNORED_DIRS for part in path.relative_to(root_path).parts):
            continue
        language = language_for_path(str(path))
        if language is None:
            continue
        if language not in enabled_languages:
            continue
        yield str(path)
