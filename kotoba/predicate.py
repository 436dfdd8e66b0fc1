"""
Predicate compiler.

A parsed query is lowered, once per match tier, into an SQL condition over
the `entries_map` text index. Each index row holds one kanji or reading
form of an entry under four keys:

    hiragana / hiragana_rev   exact (kana-normalized) form and its reverse
    keyword / keyword_rev     approximate key and its reverse

The twelve tiers are the product of three match strategies and four
positional strategies, ranked strategy-major:

    exact-full, exact-prefix, exact-suffix, exact-contains,
    approx-full, ..., fuzzy-contains
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import List, NamedTuple, Optional, Tuple, Union

from kotoba import kana
from kotoba.query import And, Glob, Keyword, Mode, Node, Not, Or, ParsedQuery, Segment


class MatchMode(str, Enum):
    EXACT = "exact"
    APPROX = "approx"
    FUZZY = "fuzzy"


class SearchMode(str, Enum):
    FULL = "full"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    CONTAINS = "contains"


class Tier(NamedTuple):
    match: MatchMode
    search: SearchMode

    @property
    def name(self) -> str:
        return f"{self.match.value}-{self.search.value}"

    @property
    def mode(self) -> str:
        """Match annotation name: 'exact', 'prefix', 'approx', 'fuzzy-suffix', ..."""
        if self.match is MatchMode.EXACT:
            return "exact" if self.search is SearchMode.FULL else self.search.value
        if self.search is SearchMode.FULL:
            return self.match.value
        return self.name


TIERS: Tuple[Tier, ...] = tuple(Tier(m, s) for m in MatchMode for s in SearchMode)

TIER_SQL = (
    "SELECT m.sequence AS sequence, e.position AS position, "
    "MIN(length(m.expr)) AS length "
    "FROM (SELECT expr, sequence FROM entries_map WHERE {where}) m "
    "LEFT JOIN entries e ON e.sequence = m.sequence "
    "GROUP BY m.sequence "
    "ORDER BY length, e.position, m.sequence"
)

_SEMI_JOIN = "sequence IN (SELECT sequence FROM entries_map WHERE {})"
_ANTI_JOIN = "sequence NOT IN (SELECT sequence FROM entries_map WHERE {})"


@dataclass(frozen=True)
class Predicate:
    """A compiled tier predicate."""
    tier: Tier
    where: str

    @property
    def sql(self) -> str:
        """Tier query returning (sequence, position, length) in relevance order."""
        return TIER_SQL.format(where=self.where)


# =============================================================================
# Keyword lowering
# =============================================================================

def _escape(text: str) -> Tuple[str, bool]:
    out = []
    escaped = False
    for ch in text:
        if ch in "%_\\":
            out.append("\\" + ch)
            escaped = True
        elif ch == "'":
            out.append("''")
        else:
            out.append(ch)
    return "".join(out), escaped


def _normalize(segments: Tuple[Segment, ...], match: MatchMode) -> List[Segment]:
    normalize = kana.to_hiragana if match is MatchMode.EXACT else kana.to_hiragana_key
    return [normalize(s) if isinstance(s, str) else s for s in segments]


def like_pattern(segments: Tuple[Segment, ...], tier: Tier) -> Tuple[str, bool]:
    """
    Build the LIKE pattern for a keyword's segments under a tier.

    Returns:
        (pattern, needs_escape_clause)
    """
    parts = _normalize(segments, tier.match)
    if tier.search is SearchMode.SUFFIX:
        parts = [kana.reverse(p) if isinstance(p, str) else p for p in reversed(parts)]

    out = []
    escaped = False
    for part in parts:
        if isinstance(part, Glob):
            out.append("%" if part.kind == "*" else "_")
            continue
        if tier.match is MatchMode.FUZZY:
            chars = []
            for ch in part:
                text, esc = _escape(ch)
                escaped = escaped or esc
                chars.append(text)
            out.append("%".join(chars))
        else:
            text, esc = _escape(part)
            escaped = escaped or esc
            out.append(text)

    pattern = "".join(out)
    if tier.search is SearchMode.CONTAINS:
        pattern = "%" + pattern + "%"
    elif tier.search is not SearchMode.FULL:
        pattern = pattern + "%"
    return pattern, escaped


def eligible(keyword: Keyword, match: MatchMode) -> bool:
    """Whether a keyword takes part in a match strategy."""
    if keyword.mode is Mode.EXACT:
        return match is MatchMode.EXACT
    if match is MatchMode.FUZZY:
        return keyword.mode is Mode.FUZZY
    return True


def _lower_keyword(keyword: Keyword, tier: Tier) -> Optional[str]:
    if not eligible(keyword, tier.match):
        return None
    column = "hiragana" if tier.match is MatchMode.EXACT else "keyword"
    if tier.search is SearchMode.SUFFIX:
        column += "_rev"
    pattern, escaped = like_pattern(keyword.segments, tier)
    clause = f"{column} LIKE '{pattern}'"
    if escaped:
        clause += " ESCAPE '\\'"
    if keyword.negate:
        return _ANTI_JOIN.format(clause)
    return clause


# =============================================================================
# Boolean lowering
# =============================================================================

def _is_negative(node: Node) -> bool:
    return isinstance(node, Not) or (isinstance(node, Keyword) and node.negate)


def _lower_and(node: And, tier: Tier) -> Optional[str]:
    positive = []
    negative = []
    for child in node.children:
        if isinstance(child, Not):
            inner = _lower(child.child, tier)
            if inner:
                negative.append(_ANTI_JOIN.format(inner))
        elif _is_negative(child):
            clause = _lower(child, tier)
            if clause:
                negative.append(clause)
        else:
            clause = _lower(child, tier)
            if clause:
                positive.append(clause)

    conjuncts = []
    for i, clause in enumerate(positive):
        # Only the first conjunct scans the index; the rest restrict by entry.
        if i == 0:
            conjuncts.append(f"({clause})" if len(positive) + len(negative) > 1 else clause)
        else:
            conjuncts.append(_SEMI_JOIN.format(clause))
    conjuncts.extend(negative)
    if not conjuncts:
        return None
    return " AND ".join(conjuncts)


def _lower_or(node: Or, tier: Tier) -> Optional[str]:
    positive = []
    negative = []
    for child in node.children:
        clause = _lower(child, tier)
        if not clause:
            continue
        (negative if _is_negative(child) else positive).append(clause)

    if len(positive) > 1:
        disjunction = " OR ".join(f"({c})" for c in positive)
    else:
        disjunction = positive[0] if positive else ""
    conjunction = " AND ".join(negative)

    if disjunction and conjunction:
        return f"({disjunction}) AND ({conjunction})"
    return disjunction or conjunction or None


def _lower(node: Node, tier: Tier) -> Optional[str]:
    if isinstance(node, Keyword):
        return _lower_keyword(node, tier)
    if isinstance(node, Not):
        inner = _lower(node.child, tier)
        return f"NOT ({inner})" if inner else None
    if isinstance(node, And):
        return _lower_and(node, tier)
    if isinstance(node, Or):
        return _lower_or(node, tier)
    raise TypeError(f"Unknown query node: {node!r}")


@lru_cache(maxsize=4096)
def _compile_cached(node: Node, tier: Tier) -> Optional[str]:
    return _lower(node, tier)


def compile_query(query: Union[ParsedQuery, Node, None], tier: Tier) -> Optional[Predicate]:
    """
    Compile a query for one tier.

    Args:
        query: Parsed query or bare predicate tree
        tier: Match tier

    Returns:
        Predicate, or None when no keyword takes part in this tier
    """
    node = query.root if isinstance(query, ParsedQuery) else query
    if node is None:
        return None
    where = _compile_cached(node, tier)
    if not where:
        return None
    return Predicate(tier, where)


def plan(query: Union[ParsedQuery, Node, None]) -> List[Predicate]:
    """
    Compile a query for every tier, in ranking order.

    Tiers whose condition repeats an earlier tier's are skipped since they
    cannot contribute new rows.
    """
    predicates = []
    seen = set()
    for tier in TIERS:
        predicate = compile_query(query, tier)
        if predicate is None or predicate.where in seen:
            continue
        seen.add(predicate.where)
        predicates.append(predicate)
    return predicates
