"""
kotoba: Japanese Dictionary Lookup Engine

Searches a JMdict-based SQLite dictionary with a small query language
(boolean operators, globs, exact and fuzzy markers), ranks matches over
twelve exact/approximate/fuzzy tiers, and resolves conjugated verbs and
adjectives to their dictionary form.

Basic Usage:
    import asyncio
    import kotoba

    async def main():
        async with kotoba.open_engine() as engine:
            result = engine.search("食べ* !=犬")
            page = await result.page(0, 20)
            for entry in page.entries:
                print(entry.word(), entry.read(), entry.match.mode)

            for entry in await engine.deinflect("食べさせられなかった"):
                print(entry.word(), entry.match.rules)

    asyncio.run(main())
"""

import threading
import time
from typing import List, Optional, Tuple

from kotoba.config import Settings
from kotoba.deinflect import Candidate, Deinflector, PhraseMatch
from kotoba.entries import Entry, EntryMatch
from kotoba.errors import (
    DictionaryNotFound,
    KotobaError,
    QuerySyntaxError,
    QueryTimeout,
    ValidationError,
    WorkerFault,
)
from kotoba.inflection import Rule, RuleTable, load_rules
from kotoba.kana import to_hiragana, to_hiragana_key
from kotoba.predicate import TIERS, Predicate, Tier, compile_query, plan
from kotoba.query import ParsedQuery, parse
from kotoba.search import Engine, KeywordSearch, Page, SearchResult

__version__ = "0.1.0"


# =============================================================================
# Engine
# =============================================================================

def open_engine(settings: Optional[Settings] = None) -> Engine:
    """
    Open a lookup engine.

    Args:
        settings: Engine settings. Read from KOTOBA_* environment variables
            if not specified.

    Returns:
        Engine (usable as an async context manager)

    Raises:
        DictionaryNotFound: If the dictionary database doesn't exist
    """
    return Engine.open(settings)


# Process-wide engine
_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def get_engine() -> Engine:
    """Get or open the process-wide engine."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = Engine.open()
    return _engine


def shutdown() -> None:
    """
    Close the process-wide engine.

    Call this when your application is shutting down to cleanly
    release the worker pool.
    """
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.close()
            _engine = None


def warm_up(verbose: bool = False) -> Tuple[float, dict]:
    """
    Open the process-wide engine ahead of the first request.

    Args:
        verbose: If True, print timing information

    Returns:
        Tuple of (total_time_seconds, timing_details_dict)
    """
    timings = {}
    if verbose:
        print("Loading kotoba dictionary...")

    t0 = time.perf_counter()
    engine = get_engine()
    timings['engine'] = (time.perf_counter() - t0) * 1000

    t0 = time.perf_counter()
    candidates = Deinflector(engine.rules).candidates("食べさせられなかった")
    timings['deinflect'] = (time.perf_counter() - t0) * 1000

    total_time = (timings['engine'] + timings['deinflect']) / 1000
    timings['total'] = total_time * 1000

    if verbose:
        print(f"  Engine:         {timings['engine']:>7.1f}ms ({len(engine.index):,} index keys)")
        print(f"  Deinflection:   {timings['deinflect']:>7.1f}ms ({len(candidates)} candidates)")
        print(f"Total warm-up:    {timings['total']:>7.1f}ms")

    return total_time, timings


def get_version() -> str:
    """Get the library version."""
    return __version__


# =============================================================================
# Async API (process-wide engine)
# =============================================================================

async def search(query: str, offset: int = 0, limit: int = 50, id: Optional[str] = None) -> Page:
    """
    Search the dictionary and return one page of entries.

    Args:
        query: Query text
        offset: Index of the first entry
        limit: Maximum number of entries

    Raises:
        QuerySyntaxError: If the query is malformed
        ValidationError: If offset or limit is invalid
        QueryTimeout: If a tier query exceeded its deadline

    Example:
        >>> import asyncio
        >>> page = asyncio.run(kotoba.search("いぬ", limit=5))
    """
    result = get_engine().search(query, id=id)
    return await result.page(offset, limit)


async def deinflect(word: str) -> List[Entry]:
    """
    Look up the dictionary forms of an inflected word.

    Example:
        >>> entries = asyncio.run(kotoba.deinflect("食べました"))
        >>> entries[0].match.rules
        ['polite', 'polite past']
    """
    return await get_engine().deinflect(word)


async def deinflect_all(phrase: str) -> List[PhraseMatch]:
    """Segment a phrase into dictionary words, longest first."""
    return await get_engine().deinflect_all(phrase)


# =============================================================================
# Module-level exports
# =============================================================================

__all__ = [
    # Engine
    "Engine",
    "Settings",
    "open_engine",
    "get_engine",
    "shutdown",
    "warm_up",
    "get_version",
    # Async API
    "search",
    "deinflect",
    "deinflect_all",
    # Results
    "Entry",
    "EntryMatch",
    "Page",
    "PhraseMatch",
    "SearchResult",
    "KeywordSearch",
    # Query language
    "parse",
    "ParsedQuery",
    "compile_query",
    "plan",
    "Predicate",
    "Tier",
    "TIERS",
    # Deinflection
    "Deinflector",
    "Candidate",
    "Rule",
    "RuleTable",
    "load_rules",
    # Kana
    "to_hiragana",
    "to_hiragana_key",
    # Exceptions
    "KotobaError",
    "QuerySyntaxError",
    "ValidationError",
    "QueryTimeout",
    "WorkerFault",
    "DictionaryNotFound",
    # Version
    "__version__",
]
