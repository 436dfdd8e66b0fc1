"""
Headword index.

Maps every kanji and reading form of the dictionary (as written and in
hiragana) to entry sequence ids. It is stored as a marisa_trie.RecordTrie
so it can be memory-mapped, and answers the exact-term and glob lookups
used to resolve deinflection candidates without touching SQLite.
"""

import logging
import sqlite3
import struct
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import marisa_trie

from kotoba import kana
from kotoba.patterns import compile_glob, has_glob, literal_prefix

logger = logging.getLogger(__name__)

# ============================================================================
# Binary Record Schema
# ============================================================================
# Each key stores one record per entry it belongs to:
#   - seq: uint32 (4 bytes) - JMdict sequence ID

RECORD_FORMAT = "<I"
RECORD_SIZE = struct.calcsize(RECORD_FORMAT)


class HeadwordIndex:
    """Term -> sequence id trie."""

    def __init__(self, trie: Optional[marisa_trie.RecordTrie] = None):
        self._trie = trie if trie is not None else marisa_trie.RecordTrie(RECORD_FORMAT, [])

    # ------------------------------------------------------------------------
    # Building / loading
    # ------------------------------------------------------------------------

    @classmethod
    def build(cls, rows: Iterable[Tuple[str, str]]) -> "HeadwordIndex":
        """
        Build an index from (term, sequence) pairs.

        Terms are indexed as written and in hiragana. Non-numeric sequence
        ids cannot be stored and are skipped.
        """
        items = set()
        skipped = 0
        for term, sequence in rows:
            sequence = str(sequence)
            if not term:
                continue
            if not sequence.isdigit():
                skipped += 1
                continue
            seq = int(sequence)
            items.add((term, (seq,)))
            items.add((kana.to_hiragana(term), (seq,)))
        if skipped:
            logger.debug(f"Skipped {skipped} rows with non-numeric sequence ids")
        return cls(marisa_trie.RecordTrie(RECORD_FORMAT, sorted(items)))

    @classmethod
    def from_database(cls, conn: sqlite3.Connection) -> "HeadwordIndex":
        """Build an index from the entries_map table."""
        rows = conn.execute("SELECT expr, sequence FROM entries_map")
        index = cls.build((expr, sequence) for expr, sequence in rows)
        logger.info(f"Built headword index with {len(index):,} keys")
        return index

    @classmethod
    def load(cls, path: Path) -> "HeadwordIndex":
        """
        Load a saved index.

        The index is memory-mapped for instant loading and low memory usage.

        Raises:
            FileNotFoundError: If the index file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Headword index not found at {path}")
        trie = marisa_trie.RecordTrie(RECORD_FORMAT)
        trie.mmap(str(path))
        return cls(trie)

    def save(self, path: Path) -> None:
        self._trie.save(str(path))

    # ------------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._trie)

    def lookup(self, term: str) -> List[str]:
        """Sequence ids of entries with the exact term."""
        return [str(seq) for (seq,) in self._trie.get(term, [])]

    def lookup_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        """(term, sequence id) pairs for every term starting with prefix."""
        return [(term, str(seq)) for term, (seq,) in self._trie.items(prefix)]

    def match(self, pattern: str) -> List[str]:
        """
        Sequence ids of entries with a term matching a glob.

        Only keys under the glob's literal prefix are scanned.
        """
        if not has_glob(pattern):
            return self.lookup(pattern)
        regex = compile_glob(pattern)
        ids = []
        seen = set()
        for term, (seq,) in self._trie.items(literal_prefix(pattern)):
            if seq not in seen and regex.match(term):
                seen.add(seq)
                ids.append(str(seq))
        return ids

    def contains(self, term: str) -> bool:
        return term in self._trie

    def has_prefix(self, prefix: str) -> bool:
        try:
            next(iter(self._trie.iterkeys(prefix)))
            return True
        except StopIteration:
            return False
