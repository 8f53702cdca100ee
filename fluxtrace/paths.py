"""Normalisation of bundler module identifiers into project-relative paths."""

from __future__ import annotations

import posixpath
import re
from pathlib import Path
from typing import Mapping, Optional

from .config import DEFAULT_ALIAS, SOURCE_EXTENSIONS

_CONCATENATED = re.compile(r"\s+\+\s+\d+\s+modules?$")


def _apply_alias(path: str, alias: Mapping[str, str]) -> str:
    for key, target in alias.items():
        if path == key:
            return target
        if path.startswith(key + "/"):
            return target.rstrip("/") + path[len(key):]
    return path


def clean_path(
    raw: Optional[str],
    project_root: Optional[Path] = None,
    alias: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Reduce a module identifier to a project-relative POSIX path.

    Loader chains (``a!b!file``), query strings, concatenation suffixes,
    absolute project prefixes, leading ``./`` and aliases are removed.
    """
    if not raw:
        return None
    alias = DEFAULT_ALIAS if alias is None else alias
    path = raw.split("!")[-1]
    path = path.split("?")[0]
    path = _CONCATENATED.sub("", path).strip()
    path = path.replace("\\", "/")
    if not path:
        return None

    if project_root is not None:
        root = str(project_root).replace("\\", "/").rstrip("/")
        if path == root:
            return None
        if path.startswith(root + "/"):
            path = path[len(root) + 1:]

    while path.startswith("./"):
        path = path[2:]
    path = _apply_alias(path, alias)
    normalized = posixpath.normpath(path)
    return None if normalized in (".", "") else normalized


def resolve_request(
    request: Optional[str],
    current: Optional[str],
    alias: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Resolve an import request relative to the module that issued it."""
    if not request:
        return None
    alias = DEFAULT_ALIAS if alias is None else alias
    request = request.split("!")[-1].split("?")[0]
    if request.startswith("."):
        base = posixpath.dirname(current or "")
        return posixpath.normpath(posixpath.join(base, request))
    return _apply_alias(request, alias)


def is_relevant_path(path: Optional[str], source_dir: str = "src") -> bool:
    if not path:
        return False
    return path.startswith(source_dir.rstrip("/") + "/") and "node_modules" not in path.split("/")


def try_resolve_extension(path: str, project_root: Path) -> str:
    """Probe known source extensions and ``index`` files for a bare path."""
    if posixpath.splitext(path)[1] in SOURCE_EXTENSIONS:
        return path
    for ext in SOURCE_EXTENSIONS:
        if (project_root / f"{path}{ext}").is_file():
            return f"{path}{ext}"
    for ext in SOURCE_EXTENSIONS:
        candidate = posixpath.join(path, f"index{ext}")
        if (project_root / candidate).is_file():
            return candidate
    return path


def to_relative(path: Path, project_root: Path) -> str:
    """Project-relative POSIX path, or the absolute path outside the project."""
    try:
        return path.resolve().relative_to(project_root.resolve()).as_posix()
    except ValueError:
        return path.resolve().as_posix()


def kebab_case(name: str) -> str:
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", name)
    return name.replace("_", "-").lower()
