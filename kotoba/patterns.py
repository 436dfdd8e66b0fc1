"""Glob patterns for tag filters and deinflection candidates."""

import re
from typing import Callable, Iterable, Optional, Pattern

GLOB_STAR = "*＊"
GLOB_CHAR = "?？"


def has_glob(text: str) -> bool:
    return any(ch in GLOB_STAR or ch in GLOB_CHAR for ch in text)


def literal_prefix(text: str) -> str:
    """Leading part of a glob before the first wildcard."""
    for i, ch in enumerate(text):
        if ch in GLOB_STAR or ch in GLOB_CHAR:
            return text[:i]
    return text


def compile_glob(glob: str) -> Pattern:
    """
    Compile a glob into an anchored, case-insensitive regex.

    `*` matches any run of characters (including none) and `?` exactly one.
    """
    parts = []
    for ch in glob:
        if ch in GLOB_STAR:
            parts.append(".*")
        elif ch in GLOB_CHAR:
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def make_filter(globs: Optional[Iterable[str]]) -> Callable[[str], bool]:
    """Predicate accepting names matching any of the globs (all names if none)."""
    patterns = [compile_glob(g) for g in (globs or []) if g]
    if not patterns:
        return lambda name: True
    return lambda name: any(p.match(name) for p in patterns)
