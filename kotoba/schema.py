"""
SQLite schema of the dictionary database and its writers.

Multi-valued fields (tag lists, cross references, ...) are stored packed
as `||`-joined strings.
"""

import logging
import re
import sqlite3
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from kotoba import kana
from kotoba.entries import Entry
from kotoba.tags import Tag

logger = logging.getLogger(__name__)

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS tags (
        name  TEXT PRIMARY KEY,
        label TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS entries (
        sequence  TEXT PRIMARY KEY,
        frequency INTEGER,
        popular   INTEGER,
        rank      INTEGER,
        position  INTEGER,
        jlpt      INTEGER
    )""",
    """CREATE TABLE IF NOT EXISTS entries_kanji (
        sequence  TEXT,
        pos       INTEGER,
        expr      TEXT,
        info      TEXT,
        priority  TEXT,
        popular   INTEGER,
        frequency INTEGER,
        PRIMARY KEY (sequence, pos)
    )""",
    """CREATE TABLE IF NOT EXISTS entries_reading (
        sequence       TEXT,
        pos            INTEGER,
        expr           TEXT,
        no_kanji       INTEGER,
        info           TEXT,
        priority       TEXT,
        restrict_kanji TEXT,
        popular        INTEGER,
        frequency      INTEGER,
        pitches        TEXT,
        PRIMARY KEY (sequence, pos)
    )""",
    """CREATE TABLE IF NOT EXISTS entries_sense (
        sequence       TEXT,
        pos            INTEGER,
        stag_kanji     TEXT,
        stag_reading   TEXT,
        part_of_speech TEXT,
        dialect        TEXT,
        xref           TEXT,
        antonym        TEXT,
        field          TEXT,
        misc           TEXT,
        info           TEXT,
        PRIMARY KEY (sequence, pos)
    )""",
    """CREATE TABLE IF NOT EXISTS entries_sense_source (
        sequence TEXT,
        pos      INTEGER,
        elem     INTEGER,
        text     TEXT,
        lang     TEXT,
        partial  INTEGER,
        wasei    INTEGER,
        PRIMARY KEY (sequence, pos, elem)
    )""",
    """CREATE TABLE IF NOT EXISTS entries_sense_glossary (
        sequence TEXT,
        pos      INTEGER,
        elem     INTEGER,
        text     TEXT,
        type     TEXT,
        PRIMARY KEY (sequence, pos, elem)
    )""",
    """CREATE TABLE IF NOT EXISTS entries_map (
        sequence     TEXT,
        expr         TEXT,
        hiragana     TEXT,
        hiragana_rev TEXT,
        keyword      TEXT,
        keyword_rev  TEXT
    )""",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_entries_position ON entries (position)",
    "CREATE INDEX IF NOT EXISTS idx_entries_kanji_expr ON entries_kanji (expr)",
    "CREATE INDEX IF NOT EXISTS idx_entries_reading_expr ON entries_reading (expr)",
    "CREATE INDEX IF NOT EXISTS idx_entries_map_sequence ON entries_map (sequence)",
    "CREATE INDEX IF NOT EXISTS idx_entries_map_hiragana ON entries_map (hiragana COLLATE NOCASE)",
    "CREATE INDEX IF NOT EXISTS idx_entries_map_hiragana_rev ON entries_map (hiragana_rev COLLATE NOCASE)",
    "CREATE INDEX IF NOT EXISTS idx_entries_map_keyword ON entries_map (keyword COLLATE NOCASE)",
    "CREATE INDEX IF NOT EXISTS idx_entries_map_keyword_rev ON entries_map (keyword_rev COLLATE NOCASE)",
]

POPULAR_PRIORITY = re.compile(r"^((news|ichi|spec|gai)1|spec2)$")
FREQUENCY_PRIORITY = re.compile(r"^nf(\d+)$")


def create_tables(conn: sqlite3.Connection) -> None:
    for statement in SCHEMA:
        conn.execute(statement)


def create_indexes(conn: sqlite3.Connection) -> None:
    for statement in INDEXES:
        conn.execute(statement)


def pack(values: Iterable) -> str:
    return "||".join(v.name if isinstance(v, Tag) else str(v) for v in values)


def is_popular(priority: Iterable[Tag]) -> bool:
    return any(POPULAR_PRIORITY.match(t.name) for t in priority)


def frequency_of(priority: Iterable[Tag]) -> int:
    """Frequency score from nfXX tags: nf01 -> 48, nf48 -> 1, none -> 0."""
    best = 0
    for tag in priority:
        m = FREQUENCY_PRIORITY.match(tag.name)
        if m:
            best = max(best, 49 - int(m.group(1)))
    return best


def map_rows(entry: Entry) -> Iterator[Tuple[str, str, str, str, str, str]]:
    """Text index rows for every kanji and reading form of an entry."""
    seen = set()
    for expr in entry.terms():
        if expr in seen:
            continue
        seen.add(expr)
        hiragana = kana.to_hiragana(expr)
        keyword = kana.to_hiragana_key(expr)
        yield (entry.id, expr, hiragana, kana.reverse(hiragana), keyword, kana.reverse(keyword))


def write_tags(conn: sqlite3.Connection, tags: Iterable[Tuple[str, str]]) -> None:
    conn.executemany("INSERT OR REPLACE INTO tags (name, label) VALUES (?, ?)", list(tags))


def _pitches(reading) -> str:
    return ";".join(
        f"{p.value}:{pack(p.tags)}" if p.tags else str(p.value)
        for p in reading.pitches
    )


def write_entry(conn: sqlite3.Connection, entry: Entry) -> None:
    """Insert one entry into every entry table and the text index."""
    conn.execute(
        "INSERT OR REPLACE INTO entries (sequence, frequency, popular, rank, position, jlpt) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (entry.id, entry.frequency, int(entry.popular), entry.rank, entry.position, entry.jlpt))
    conn.executemany(
        "INSERT OR REPLACE INTO entries_kanji "
        "(sequence, pos, expr, info, priority, popular, frequency) VALUES (?, ?, ?, ?, ?, ?, ?)",
        [(entry.id, i, k.expr, pack(k.info), pack(k.priority), int(k.popular), frequency_of(k.priority))
         for i, k in enumerate(entry.kanji)])
    conn.executemany(
        "INSERT OR REPLACE INTO entries_reading "
        "(sequence, pos, expr, no_kanji, info, priority, restrict_kanji, popular, frequency, pitches) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [(entry.id, i, r.expr, int(r.no_kanji), pack(r.info), pack(r.priority), pack(r.restrict),
          int(r.popular), frequency_of(r.priority), _pitches(r))
         for i, r in enumerate(entry.reading)])
    for i, s in enumerate(entry.sense):
        conn.execute(
            "INSERT OR REPLACE INTO entries_sense "
            "(sequence, pos, stag_kanji, stag_reading, part_of_speech, dialect, xref, antonym, "
            "field, misc, info) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (entry.id, i, pack(s.stag_kanji), pack(s.stag_reading), pack(s.pos), pack(s.dialect),
             pack(s.xref), pack(s.antonym), pack(s.field), pack(s.misc), pack(s.info)))
        conn.executemany(
            "INSERT OR REPLACE INTO entries_sense_source "
            "(sequence, pos, elem, text, lang, partial, wasei) VALUES (?, ?, ?, ?, ?, ?, ?)",
            [(entry.id, i, j, src.text, src.lang, int(src.partial), int(src.wasei))
             for j, src in enumerate(s.source)])
        conn.executemany(
            "INSERT OR REPLACE INTO entries_sense_glossary "
            "(sequence, pos, elem, text, type) VALUES (?, ?, ?, ?, ?)",
            [(entry.id, i, j, g.text, g.type) for j, g in enumerate(s.glossary)])
    conn.execute("DELETE FROM entries_map WHERE sequence = ?", (entry.id,))
    conn.executemany(
        "INSERT INTO entries_map (sequence, expr, hiragana, hiragana_rev, keyword, keyword_rev) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        list(map_rows(entry)))


def _sequence_key(entry: Entry):
    return (0, int(entry.id)) if entry.id.isdigit() else (1, entry.id)


def rank_entries(entries: Sequence[Entry]) -> List[Entry]:
    """
    Fill in popularity, frequency, rank and position.

    Position orders popular entries first, then by frequency score, then by
    sequence. Rank counts the priority markers across all forms.
    """
    for entry in entries:
        priority = [t for k in entry.kanji for t in k.priority]
        priority += [t for r in entry.reading for t in r.priority]
        for k in entry.kanji:
            k.popular = is_popular(k.priority)
        for r in entry.reading:
            r.popular = is_popular(r.priority)
        entry.popular = is_popular(priority)
        entry.frequency = frequency_of(priority)
        entry.rank = len(priority)

    ordered = sorted(entries, key=lambda e: (not e.popular, -e.frequency, _sequence_key(e)))
    for position, entry in enumerate(ordered, 1):
        entry.position = position
    return ordered


def write_database(
    conn: sqlite3.Connection,
    entries: Sequence[Entry],
    tags: Optional[Iterable[Tuple[str, str]]] = None,
) -> int:
    """
    Create the schema and write a complete dictionary.

    Args:
        conn: Target connection (an empty database)
        entries: All entries; ranks and positions are computed here
        tags: Optional (name, label) pairs for the tags table

    Returns:
        Number of entries written
    """
    create_tables(conn)
    if tags:
        write_tags(conn, tags)
    ordered = rank_entries(entries)
    for i, entry in enumerate(ordered, 1):
        write_entry(conn, entry)
        if i % 10000 == 0:
            logger.info(f"Wrote {i:,} entries...")
    create_indexes(conn)
    conn.commit()
    logger.info(f"Wrote {len(ordered):,} entries")
    return len(ordered)
