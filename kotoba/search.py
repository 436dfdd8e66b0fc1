"""
Lookup engine.

Ties the pieces together:

    query text -> parse -> plan (tier predicates) -> SearchOperation
    (tiers run on the Database pool, rows buffered) -> page -> hydrate

Deinflection runs candidates through the HeadwordIndex instead of the tier
predicates and hydrates the hits directly.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from kotoba import entries as entry_store
from kotoba import tags as tag_store
from kotoba.cache import SearchCache, SearchOperation, SearchRow, TierRows, validate_page
from kotoba.config import Settings
from kotoba.db import Database
from kotoba.deinflect import Deinflector, PhraseMatch
from kotoba.entries import Entry
from kotoba.index import HeadwordIndex
from kotoba.inflection import RuleTable, load_rules
from kotoba.predicate import MatchMode, Predicate, SearchMode, Tier, compile_query, plan
from kotoba.query import Keyword, Mode, parse, split_segments
from kotoba.tags import Tag

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Page:
    offset: int
    limit: int
    entries: List[Entry] = field(default_factory=list)


async def _run_tiers(database: Database, predicates: Sequence[Predicate]) -> AsyncIterator[TierRows]:
    for predicate in predicates:
        rows = await database.query(predicate.sql)
        yield predicate.tier, [(str(row[0]), row[1]) for row in rows]


class SearchResult:
    """
    Handle on a (possibly shared, possibly running) search.

    total(), elapsed() and loading() reflect the rows buffered so far; they
    are final for a request only after all of its pages have resolved, which
    pages() guarantees.
    """

    def __init__(self, engine: "Engine", operation: SearchOperation, query: str, keywords: List[str]):
        self.engine = engine
        self.operation = operation
        self.query = query
        self.keywords = keywords

    @property
    def id(self) -> str:
        return self.operation.id

    def total(self) -> int:
        return self.operation.total

    def elapsed(self) -> float:
        return self.operation.elapsed

    def loading(self) -> bool:
        return self.operation.loading

    def page(self, offset: int, limit: int) -> "asyncio.Future[Page]":
        """
        Request a page of hydrated entries.

        Raises:
            ValidationError: Immediately, for invalid offset or limit
        """
        rows = self.operation.page(offset, limit)
        return asyncio.ensure_future(self._hydrate(offset, limit, rows))

    async def _hydrate(self, offset: int, limit: int, rows: "asyncio.Future[List[SearchRow]]") -> Page:
        resolved = await rows
        return Page(offset, limit, await self.engine.hydrate(resolved, self.query, self.keywords))

    async def pages(self, requests: Sequence[Tuple[int, int]]) -> List[Page]:
        """
        Request several pages and wait for all of them.

        All arguments are validated before any page is requested.
        """
        for offset, limit in requests:
            validate_page(offset, limit)
        return list(await asyncio.gather(*(self.page(o, l) for o, l in requests)))


class KeywordSearch:
    """Single-keyword searches sharing the engine's search cache."""

    def __init__(self, engine: "Engine", keyword: str):
        self.engine = engine
        self.keyword = keyword.strip()

    def _keyword(self, mode: Mode) -> Keyword:
        return Keyword(split_segments(self.keyword.upper()), mode)

    def _strategies(self, approx: bool, fuzzy: bool) -> List[MatchMode]:
        strategies = [MatchMode.EXACT]
        if approx:
            strategies.append(MatchMode.APPROX)
        if fuzzy:
            strategies.append(MatchMode.FUZZY)
        return strategies

    def _search(self, search: SearchMode, approx: bool, fuzzy: bool) -> SearchResult:
        keyword = self._keyword(Mode.FUZZY if fuzzy else Mode.NORMAL)
        predicates = []
        seen = set()
        for strategy in self._strategies(approx, fuzzy):
            predicate = compile_query(keyword, Tier(strategy, search))
            if predicate is not None and predicate.where not in seen:
                seen.add(predicate.where)
                predicates.append(predicate)
        flags = "".join(f for f, on in (("a", approx), ("f", fuzzy)) if on)
        id = f"{self.keyword} ({search.value}{'/' + flags if flags else ''})"
        return self.engine._start(id, predicates, self.keyword, [keyword.literal])

    async def exact(self) -> List[Entry]:
        """Every entry with a form equal to the keyword (globs allowed)."""
        result = self._search(SearchMode.FULL, False, False)
        await result.operation.wait()
        if result.operation.error is not None:
            raise result.operation.error
        return await self.engine.hydrate(result.operation.rows, self.keyword, [self.keyword])

    async def matches(self, approx: bool = False, fuzzy: bool = False, offset: int = 0, limit: int = 100) -> Page:
        validate_page(offset, limit)
        return await self._search(SearchMode.FULL, approx, fuzzy).page(offset, limit)

    async def prefix(self, approx: bool = False, fuzzy: bool = False, offset: int = 0, limit: int = 100) -> Page:
        validate_page(offset, limit)
        return await self._search(SearchMode.PREFIX, approx, fuzzy).page(offset, limit)

    async def suffix(self, approx: bool = False, fuzzy: bool = False, offset: int = 0, limit: int = 100) -> Page:
        validate_page(offset, limit)
        return await self._search(SearchMode.SUFFIX, approx, fuzzy).page(offset, limit)

    async def contains(self, approx: bool = False, fuzzy: bool = False, offset: int = 0, limit: int = 100) -> Page:
        validate_page(offset, limit)
        return await self._search(SearchMode.CONTAINS, approx, fuzzy).page(offset, limit)


class Engine:
    """
    Dictionary lookup engine.

    Args:
        database: Worker pool over the dictionary database
        index: Headword index for deinflection lookups
        rules: Inflection rule table
        cache: Search cache (a fresh one sized from settings if omitted)
        settings: Engine settings
    """

    def __init__(
        self,
        database: Database,
        index: HeadwordIndex,
        rules: RuleTable,
        cache: Optional[SearchCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.database = database
        self.index = index
        self.rules = rules
        if cache is None:
            cache = SearchCache(self.settings.cache_capacity, self.settings.cache_min_ttl)
        self.cache = cache

    @classmethod
    def open(cls, settings: Optional[Settings] = None) -> "Engine":
        """
        Open the dictionary described by settings.

        The headword index is memory-mapped when its file exists and built
        from the database otherwise.

        Raises:
            DictionaryNotFound: If the database file doesn't exist
        """
        settings = settings or Settings.from_env()
        database = Database(settings.database_path, size=settings.pool_size, timeout=settings.query_timeout)
        try:
            if settings.index_path.exists():
                index = HeadwordIndex.load(settings.index_path)
            else:
                logger.info(f"No headword index at {settings.index_path}, building from database")
                index = database.execute(HeadwordIndex.from_database)
            rules = load_rules(settings.rules_path)
        except BaseException:
            database.close()
            raise
        logger.info(f"Opened dictionary {settings.database_path} ({len(index):,} index keys, {len(rules)} rules)")
        return cls(database, index, rules, settings=settings)

    def close(self) -> None:
        self.database.close()

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------------

    def _start(self, id: str, predicates: Sequence[Predicate], query: str, keywords: List[str]) -> SearchResult:
        operation = self.cache.get(id)
        self.cache.start_if(operation, lambda: _run_tiers(self.database, predicates))
        return SearchResult(self, operation, query, keywords)

    def search(self, query: str, id: Optional[str] = None) -> SearchResult:
        """
        Start (or join) a search.

        Must be called from a running event loop. The query is parsed
        synchronously, so syntax errors raise here.

        Args:
            query: Query text
            id: Cache key; defaults to the normalized query text

        Raises:
            QuerySyntaxError: If the query is malformed
        """
        parsed = parse(query)
        predicates = plan(parsed)
        keywords = [k.literal for k in parsed.keywords()]
        return self._start(id if id is not None else parsed.id, predicates, query, keywords)

    async def hydrate(self, rows: Sequence[SearchRow], query: str, keywords: Sequence[str]) -> List[Entry]:
        """Load entries for rows, annotated with the tier that found them."""
        if not rows:
            return []
        tiers = {row.sequence: row.tier for row in rows}
        loaded = await self.by_ids([row.sequence for row in rows])
        return [
            entry_store.annotate(entry, tiers[entry.id].mode, query, keywords)
            for entry in loaded
        ]

    def list(self, keyword: str) -> KeywordSearch:
        return KeywordSearch(self, keyword)

    # ------------------------------------------------------------------------
    # Deinflection
    # ------------------------------------------------------------------------

    def _candidate_ids(self, terms: Sequence[str]) -> List[str]:
        ids = []
        seen = set()
        for term in terms:
            for sequence in self.index.match(term):
                if sequence not in seen:
                    seen.add(sequence)
                    ids.append(sequence)
        return ids

    async def deinflect(self, word: str) -> List[Entry]:
        """Entries the word is an inflected (or plain) form of."""
        deinflector = Deinflector(self.rules)
        deinflector.add(word)
        found = await self.by_ids(self._candidate_ids(deinflector.list_candidates()))
        return deinflector.filter(found)

    async def deinflect_all(self, phrase: str) -> List[PhraseMatch]:
        """Split a phrase into the longest deinflectable segments."""
        deinflector = Deinflector(self.rules)
        deinflector.add_phrase(phrase)
        found = await self.by_ids(self._candidate_ids(deinflector.list_candidates()))
        return deinflector.deinflect_all(found)

    # ------------------------------------------------------------------------
    # Entries and tags
    # ------------------------------------------------------------------------

    async def by_ids(self, ids: Sequence[str]) -> List[Entry]:
        return await self.database.call(entry_store.by_ids, list(ids))

    async def lookup(self, kanji: str, reading: str) -> List[Entry]:
        return await self.database.call(entry_store.lookup, kanji, reading)

    async def tags(self, names: Optional[Sequence[str]] = None) -> List[Tag]:
        return await self.database.call(tag_store.tags, names)
