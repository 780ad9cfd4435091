"""Glob sets: absolute POSIX patterns with ``**`` support, shared by watchers and codegen."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

_WILDCARDS = frozenset("*?[")
# One-character classes, the form glob.escape emits for [ * and ?.
_ESCAPED = re.compile(r"\[(.)\]")


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a glob into a regex.

    ``**/`` matches zero or more directories, ``*`` and ``?`` never cross a
    ``/``, ``[...]`` is passed through as a character class. A one-character
    class is matched as that literal character, so ``glob.escape`` output
    round-trips.
    """
    i, n = 0, len(pattern)
    out: list[str] = []
    while i < n:
        c = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
                i += 1
            elif end == i + 2:
                out.append(re.escape(pattern[i + 1]))
                i = end + 1
            else:
                out.append(pattern[i : end + 1])
                i = end + 1
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("".join(out) + r"\Z")


def _literal(segment: str) -> str | None:
    """*segment* with escapes resolved, or None when it holds a real wildcard."""
    if any(ch in _WILDCARDS for ch in _ESCAPED.sub("", segment)):
        return None
    return _ESCAPED.sub(r"\1", segment)


def glob_base(pattern: str) -> Path:
    """The longest leading directory of *pattern* that holds no wildcard."""
    parts: list[str] = []
    segments = pattern.split("/")
    for segment in segments[:-1]:
        literal = _literal(segment)
        if literal is None:
            break
        parts.append(literal)
    return Path("/".join(parts) or "/")


def matches(patterns: Iterable[str], path: str | Path) -> bool:
    posix = Path(path).as_posix()
    return any(compile_glob(p).match(posix) for p in patterns)


def expand(patterns: Iterable[str]) -> list[Path]:
    """Every existing file matching any of *patterns*, sorted and de-duplicated."""
    patterns = tuple(patterns)
    found: set[Path] = set()
    for base in {glob_base(p) for p in patterns}:
        if not base.is_dir():
            continue
        for candidate in base.rglob("*"):
            if candidate.is_file() and matches(patterns, candidate):
                found.add(candidate)
    return sorted(found)
