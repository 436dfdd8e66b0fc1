"""
Dictionary tags (part of speech, field, dialect, priority, ...).

The tag table is small and static, so it is read once per database and
kept for the life of the process.
"""

import sqlite3
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from kotoba.patterns import make_filter


@dataclass(frozen=True, slots=True)
class Tag:
    name: str
    text: str


# database file -> name -> Tag
_TAGS: Dict[str, Dict[str, Tag]] = {}
_TAGS_LOCK = threading.Lock()

_PRIORITY_TEXT = {
    "news1": "top half 12K entries from Mainichi Shimbun newspaper word corpus",
    "news2": "bottom half 12K entries from Mainichi Shimbun newspaper word corpus",
    "ichi1": 'appears in the "Ichimango goi bunruishuu" word corpus',
    "ichi2": 'appears in the "Ichimango goi bunruishuu" word corpus, '
             "but demoted due to low frequency on other sources",
    "spec1": "top half of common words that do not appear on the word corpus",
    "spec2": "bottom half of common words that do not appear on the word corpus",
    "gai1": "top half of common loanwords in the word corpus",
    "gai2": "bottom half of common loanwords in the word corpus",
}


def _database_key(conn: sqlite3.Connection) -> str:
    row = conn.execute("PRAGMA database_list").fetchone()
    path = row[2] if row is not None else ""
    return path or f"memory:{id(conn)}"


def all_tags(conn: sqlite3.Connection) -> Dict[str, Tag]:
    """All tags of the database behind conn, by name."""
    key = _database_key(conn)
    with _TAGS_LOCK:
        cached = _TAGS.get(key)
        if cached is not None:
            return cached
    rows = conn.execute("SELECT name, label FROM tags").fetchall()
    loaded = {row[0]: Tag(row[0], row[1] or "") for row in rows}
    with _TAGS_LOCK:
        return _TAGS.setdefault(key, loaded)


def clear_cache() -> None:
    """Forget loaded tag tables."""
    with _TAGS_LOCK:
        _TAGS.clear()


def tags(conn: sqlite3.Connection, names: Optional[Iterable[str]] = None) -> List[Tag]:
    """
    List tags sorted by name (case-insensitive).

    Args:
        conn: Dictionary connection
        names: Optional globs; only tags matching any of them are returned
    """
    accept = make_filter(names)
    ls = sorted(all_tags(conn).values(), key=lambda t: t.name.lower())
    return [t for t in ls if accept(t.name)]


def describe(name: str) -> str:
    """Text for priority tags that have no row in the tags table."""
    text = _PRIORITY_TEXT.get(name)
    if text is not None:
        return text
    if name.startswith("nf") and name[2:].isdigit():
        page = int(name[2:])
        top = f"{page * 0.5:g}K" if page > 1 else f"{page * 500}"
        return f"top {top} in the word corpus"
    return ""


def split(packed: Optional[str], all_tags: Dict[str, Tag]) -> List[Tag]:
    """
    Resolve a packed tag list ("a||b" or "a,b") into tags.

    Unknown names are kept, with generated text for priority tags.
    """
    if not packed:
        return []
    result = []
    for name in packed.replace(",", "||").split("||"):
        if not name:
            continue
        tag = all_tags.get(name)
        result.append(tag if tag is not None else Tag(name, describe(name)))
    return result
