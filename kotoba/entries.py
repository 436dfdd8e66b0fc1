"""
Dictionary entries.

Entries are stored across several tables (see kotoba.schema) and assembled
here on demand. Hydration is keyed by sequence id: ids without a backing
row are dropped silently and the result follows the order of the ids.
"""

import sqlite3
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from kotoba import kana
from kotoba import tags as tag_store
from kotoba.tags import Tag

# SQLite host parameter limit is 999 on older builds
LOAD_BATCH = 900


# =============================================================================
# Entry Data Structures
# =============================================================================

@dataclass(slots=True)
class Pitch:
    value: int
    tags: List[Tag] = field(default_factory=list)


@dataclass(slots=True)
class EntryKanji:
    expr: str
    info: List[Tag] = field(default_factory=list)
    priority: List[Tag] = field(default_factory=list)
    popular: bool = False


@dataclass(slots=True)
class EntryReading:
    expr: str
    no_kanji: bool = False
    restrict: List[str] = field(default_factory=list)
    info: List[Tag] = field(default_factory=list)
    priority: List[Tag] = field(default_factory=list)
    popular: bool = False
    pitches: List[Pitch] = field(default_factory=list)


@dataclass(slots=True)
class Glossary:
    text: str
    type: Optional[str] = None


@dataclass(slots=True)
class SenseSource:
    text: str
    lang: str = "eng"
    partial: bool = False
    wasei: bool = False


@dataclass(slots=True)
class EntrySense:
    pos: List[Tag] = field(default_factory=list)
    misc: List[Tag] = field(default_factory=list)
    dialect: List[Tag] = field(default_factory=list)
    info: List[str] = field(default_factory=list)
    xref: List[str] = field(default_factory=list)
    antonym: List[str] = field(default_factory=list)
    stag_kanji: List[str] = field(default_factory=list)
    stag_reading: List[str] = field(default_factory=list)
    source: List[SenseSource] = field(default_factory=list)
    glossary: List[Glossary] = field(default_factory=list)
    # shadows dataclasses.field, keep last
    field: List[Tag] = field(default_factory=list)


@dataclass(slots=True)
class EntryMatch:
    """
    How an entry was matched.

    Attributes:
        mode: Tier mode name ("exact", "approx-prefix", ...) or "deinflect"
        query: The query (or surface form) that produced the match
        text: The entry term that matched
        segments: Matched (start, end) spans in text
        inflected_suffix: Surface suffix removed by deinflection
        rules: Names of the inflection rules applied, innermost first
        partial_suffix: Untyped remainder completed by partial deinflection
    """
    mode: str
    query: str
    text: str
    segments: List[Tuple[int, int]] = field(default_factory=list)
    inflected_suffix: str = ""
    rules: List[str] = field(default_factory=list)
    partial_suffix: str = ""


@dataclass(slots=True)
class Entry:
    """
    A dictionary entry.

    Attributes:
        id: JMdict sequence id
        rank: Relevance rank (lower is better)
        position: Global ordering position (popular, then frequent first)
        frequency: Word frequency rank from nfXX tags (0 when unknown)
        jlpt: JLPT level, if known
        popular: Whether any form carries a common-word priority tag
    """
    id: str
    rank: int = 0
    position: int = 0
    frequency: int = 0
    jlpt: Optional[int] = None
    popular: bool = False
    kanji: List[EntryKanji] = field(default_factory=list)
    reading: List[EntryReading] = field(default_factory=list)
    sense: List[EntrySense] = field(default_factory=list)
    match: Optional[EntryMatch] = None

    def word(self) -> str:
        """Main written form: first kanji, else first reading."""
        if self.kanji:
            return self.kanji[0].expr
        return self.read()

    def read(self) -> str:
        return self.reading[0].expr if self.reading else ""

    def terms(self) -> List[str]:
        """All kanji and reading forms."""
        return [k.expr for k in self.kanji] + [r.expr for r in self.reading]

    def with_match(self, match: EntryMatch) -> "Entry":
        return replace(self, match=match)

    def tag_names(self) -> List[str]:
        names = []
        for k in self.kanji:
            names.extend(t.name for t in k.info)
        for r in self.reading:
            names.extend(t.name for t in r.info)
        for s in self.sense:
            names.extend(t.name for t in s.pos)
        return names

    def has_rule_tag(self, rule_tags: Iterable[str]) -> bool:
        """
        Check the entry against inflection rule classes.

        A rule class matches any entry tag it prefixes, so "v5" matches
        "v5m" and "vs" matches "vs-i".
        """
        names = self.tag_names()
        return any(name.startswith(tag) for tag in rule_tags for name in names)

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Match Annotation
# =============================================================================

def _score(term: str, query: str) -> Tuple[float, List[Tuple[int, int]]]:
    if not query or not term:
        return 0.0, []
    index = term.find(query)
    if index >= 0:
        return 10 + len(query) / len(term), [(index, index + len(query))]

    # In-order character subsequence
    segments: List[Tuple[int, int]] = []
    pos = 0
    matched = 0
    for ch in query:
        found = term.find(ch, pos)
        if found < 0:
            continue
        matched += 1
        if segments and segments[-1][1] == found:
            segments[-1] = (segments[-1][0], found + 1)
        else:
            segments.append((found, found + 1))
        pos = found + 1
    return matched / len(term), segments


def best_match_text(entry: Entry, queries: Sequence[str]) -> Tuple[str, List[Tuple[int, int]]]:
    """
    Pick the entry term that best matches any of the query texts.

    A contiguous match scores 10 + len(query)/len(term); otherwise the
    fraction of the term covered by an in-order character match.

    Returns:
        (term, matched spans); the first term with no spans if none match
    """
    best_text = entry.word()
    best_segments: List[Tuple[int, int]] = []
    best_score = 0.0
    normalized = [kana.to_hiragana(q).lower() for q in queries if q]
    for term in entry.terms():
        hira = kana.to_hiragana(term).lower()
        for query in normalized:
            score, segments = _score(hira, query)
            if score > best_score:
                best_score, best_text, best_segments = score, term, segments
    return best_text, best_segments


def annotate(entry: Entry, mode: str, query: str, keywords: Sequence[str]) -> Entry:
    text, segments = best_match_text(entry, keywords)
    return entry.with_match(EntryMatch(mode=mode, query=query, text=text, segments=segments))


# =============================================================================
# Hydration
# =============================================================================

def _split_list(packed: Optional[str]) -> List[str]:
    return [x for x in packed.split("||") if x] if packed else []


def parse_pitch(packed: Optional[str], all_tags: Dict[str, Tag]) -> List[Pitch]:
    """
    Parse a packed pitch accent list.

    Example:
        >>> parse_pitch("0:n,adv;2", {})
        [Pitch(value=0, tags=[...]), Pitch(value=2, tags=[])]
    """
    pitches = []
    for item in (packed or "").split(";"):
        if not item:
            continue
        value, _, packed_tags = item.partition(":")
        pitches.append(Pitch(int(value), tag_store.split(packed_tags, all_tags)))
    return pitches


def _placeholders(n: int) -> str:
    return ",".join("?" * n)


def _load_batch(conn: sqlite3.Connection, ids: List[str], all_tags: Dict[str, Tag]) -> Dict[str, Entry]:
    marks = _placeholders(len(ids))
    entries: Dict[str, Entry] = {}

    rows = conn.execute(
        f"SELECT sequence, rank, position, frequency, jlpt, popular "
        f"FROM entries WHERE sequence IN ({marks})", ids)
    for seq, rank, position, frequency, jlpt, popular in rows:
        entries[seq] = Entry(
            id=seq, rank=rank or 0, position=position or 0, frequency=frequency or 0,
            jlpt=jlpt, popular=bool(popular),
        )
    if not entries:
        return entries

    rows = conn.execute(
        f"SELECT sequence, expr, info, priority, popular FROM entries_kanji "
        f"WHERE sequence IN ({marks}) ORDER BY sequence, pos", ids)
    for seq, expr, info, priority, popular in rows:
        entries[seq].kanji.append(EntryKanji(
            expr=expr,
            info=tag_store.split(info, all_tags),
            priority=tag_store.split(priority, all_tags),
            popular=bool(popular),
        ))

    rows = conn.execute(
        f"SELECT sequence, expr, no_kanji, restrict_kanji, info, priority, popular, pitches "
        f"FROM entries_reading WHERE sequence IN ({marks}) ORDER BY sequence, pos", ids)
    for seq, expr, no_kanji, restrict, info, priority, popular, pitches in rows:
        entries[seq].reading.append(EntryReading(
            expr=expr,
            no_kanji=bool(no_kanji),
            restrict=_split_list(restrict),
            info=tag_store.split(info, all_tags),
            priority=tag_store.split(priority, all_tags),
            popular=bool(popular),
            pitches=parse_pitch(pitches, all_tags),
        ))

    senses: Dict[Tuple[str, int], EntrySense] = {}
    rows = conn.execute(
        f"SELECT sequence, pos, stag_kanji, stag_reading, part_of_speech, dialect, "
        f"xref, antonym, field, misc, info FROM entries_sense "
        f"WHERE sequence IN ({marks}) ORDER BY sequence, pos", ids)
    for seq, pos, stag_kanji, stag_reading, part_of_speech, dialect, xref, antonym, fld, misc, info in rows:
        sense = EntrySense(
            pos=tag_store.split(part_of_speech, all_tags),
            field=tag_store.split(fld, all_tags),
            misc=tag_store.split(misc, all_tags),
            dialect=tag_store.split(dialect, all_tags),
            info=_split_list(info),
            xref=_split_list(xref),
            antonym=_split_list(antonym),
            stag_kanji=_split_list(stag_kanji),
            stag_reading=_split_list(stag_reading),
        )
        senses[(seq, pos)] = sense
        entries[seq].sense.append(sense)

    rows = conn.execute(
        f"SELECT sequence, pos, text, lang, partial, wasei FROM entries_sense_source "
        f"WHERE sequence IN ({marks}) ORDER BY sequence, pos, elem", ids)
    for seq, pos, text, lang, partial, wasei in rows:
        sense = senses.get((seq, pos))
        if sense is not None:
            sense.source.append(SenseSource(text or "", lang or "eng", bool(partial), bool(wasei)))

    rows = conn.execute(
        f"SELECT sequence, pos, text, type FROM entries_sense_glossary "
        f"WHERE sequence IN ({marks}) ORDER BY sequence, pos, elem", ids)
    for seq, pos, text, gloss_type in rows:
        sense = senses.get((seq, pos))
        if sense is not None:
            sense.glossary.append(Glossary(text, gloss_type))

    return entries


def by_ids(conn: sqlite3.Connection, ids: Iterable) -> List[Entry]:
    """
    Hydrate entries by sequence id.

    Args:
        conn: Dictionary connection
        ids: Sequence ids (duplicates are collapsed)

    Returns:
        Entries in id order; ids without an entry are omitted
    """
    unique: List[str] = []
    seen = set()
    for i in ids:
        i = str(i)
        if i not in seen:
            seen.add(i)
            unique.append(i)
    if not unique:
        return []

    all_tags = tag_store.all_tags(conn)
    loaded: Dict[str, Entry] = {}
    for start in range(0, len(unique), LOAD_BATCH):
        loaded.update(_load_batch(conn, unique[start:start + LOAD_BATCH], all_tags))
    return [loaded[i] for i in unique if i in loaded]


def lookup(conn: sqlite3.Connection, kanji: str, reading: str) -> List[Entry]:
    """
    Find entries by exact kanji and reading.

    An empty kanji (or one equal to the reading) looks up kana-only entries.
    Readings restricted to other kanji forms do not match.
    """
    if not kanji or kanji == reading:
        rows = conn.execute(
            "SELECT DISTINCT r.sequence, e.position FROM entries_reading r "
            "JOIN entries e ON e.sequence = r.sequence "
            "LEFT JOIN entries_kanji k ON k.sequence = r.sequence "
            "WHERE r.expr = ? AND k.expr IS NULL ORDER BY e.position", (reading,))
        return by_ids(conn, [row[0] for row in rows])

    rows = conn.execute(
        "SELECT DISTINCT r.sequence, e.position FROM entries_reading r "
        "JOIN entries e ON e.sequence = r.sequence "
        "JOIN entries_kanji k ON k.sequence = r.sequence "
        "WHERE r.expr = ? AND k.expr = ? ORDER BY e.position", (reading, kanji))
    result = []
    for entry in by_ids(conn, [row[0] for row in rows]):
        for r in entry.reading:
            if r.expr == reading and not r.no_kanji and (not r.restrict or kanji in r.restrict):
                result.append(entry)
                break
    return result


def count(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
