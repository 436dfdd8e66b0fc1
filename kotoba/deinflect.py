"""
Deinflection: reverse conjugation of verb and adjective forms.

Starting from a surface form, rules from the RuleTable are applied
backwards (inflected suffix -> dictionary suffix) breadth-first. Every
visited form is a candidate headword, not only the leaves, since a
partially inflected form may itself be a dictionary entry.

A Deinflector holds the candidates of one request; the RuleTable it is
given is shared and never modified.

Example:
    >>> d = Deinflector(load_rules())
    >>> [c.term for c in d.candidates("食べた")][:2]
    ['食べた', '食べる']
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Pattern, Sequence, Set, Tuple

from kotoba import kana
from kotoba.entries import Entry, EntryMatch
from kotoba.inflection import Rule, RuleTable
from kotoba.patterns import compile_glob, has_glob

logger = logging.getLogger(__name__)

# Longest phrase segment considered by deinflect_all
MAX_TERM_LENGTH = 16


@dataclass(slots=True)
class Candidate:
    """
    A possible uninflected form of a surface string.

    Attributes:
        term: Candidate headword (hiragana-normalized)
        source: The surface form it was derived from
        prefix: Leading part of source left untouched by the rules
        partial_suffix: Untyped rest of a partially matched suffix
        constraints: Bitset of grammatical classes the headword must have
        reasons: Applied rules, innermost (closest to the headword) first
    """
    term: str
    source: str
    prefix: str
    partial_suffix: str = ""
    constraints: int = 0
    reasons: Tuple[Rule, ...] = ()

    @property
    def inflected_suffix(self) -> str:
        return self.source[len(self.prefix):]

    @property
    def rule_names(self) -> List[str]:
        return [r.name for r in self.reasons]

    @property
    def is_glob(self) -> bool:
        return has_glob(self.term)

    def rank(self) -> Tuple[int, int, int]:
        return (len(self.partial_suffix), len(self.reasons), len(self.term))


@dataclass(slots=True)
class PhraseMatch:
    """Entries matched by one segment of a phrase."""
    position: int
    input: str
    entries: List[Entry] = field(default_factory=list)


def _common_prefix(a: str, b: str) -> str:
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return a[:n]


class Deinflector:
    """Collects deinflection candidates for one request and filters entries against them."""

    def __init__(self, rules: RuleTable):
        self.rules = rules
        self._candidates: List[Candidate] = []
        self._phrase = ""
        self._spans: Dict[Tuple[int, int], List[Candidate]] = {}
        self._patterns: Dict[str, Pattern] = {}

    # ------------------------------------------------------------------------
    # Candidate expansion
    # ------------------------------------------------------------------------

    def _expand(self, current: Candidate, partial: bool) -> Iterator[Tuple[Rule, str, str]]:
        term = current.term
        for rule in self.rules.ending_with(term):
            if current.constraints and not (current.constraints & rule.classes_in):
                continue
            if not term.endswith(rule.suffix_in):
                continue
            result = term[:-len(rule.suffix_in)] + rule.suffix_out
            if result:
                yield rule, result, current.partial_suffix

        if not partial:
            return
        for rule in self.rules:
            for k in range(1, len(rule.suffix_in)):
                if term.endswith(rule.suffix_in[:k]):
                    result = term[:-k] + rule.suffix_out
                    if result:
                        yield rule, result, rule.suffix_in[k:]

    def candidates(self, surface: str, partial: bool = False) -> List[Candidate]:
        """
        Enumerate every candidate headword of a surface form.

        Args:
            surface: Text to deinflect
            partial: Also complete suffixes the user has not finished typing
                (applies to the surface form only)

        Returns:
            Candidates in breadth-first order, the surface form itself first
        """
        source = kana.to_hiragana(surface.strip())
        if not source:
            return []

        arena = [Candidate(term=source, source=source, prefix=source)]
        visited: Set[Tuple[str, int]] = {(source, 0)}
        queue = deque([0])
        while queue:
            index = queue.popleft()
            current = arena[index]
            for rule, term, partial_suffix in self._expand(current, partial and index == 0):
                key = (term, rule.classes_out)
                if key in visited:
                    continue
                visited.add(key)
                arena.append(Candidate(
                    term=term,
                    source=source,
                    prefix=_common_prefix(source, term),
                    partial_suffix=partial_suffix,
                    constraints=rule.classes_out,
                    reasons=(rule,) + current.reasons,
                ))
                queue.append(len(arena) - 1)
        return arena

    def add(self, surface: str, partial: bool = False) -> List[Candidate]:
        """Add the candidates of a surface form to this request."""
        found = self.candidates(surface, partial)
        self._candidates.extend(found)
        return found

    def add_phrase(self, phrase: str) -> None:
        """
        Add candidates for every segment of a phrase.

        Segments are substrings of the hiragana-normalized phrase up to
        MAX_TERM_LENGTH long, without whitespace. Segments reaching the end of
        the phrase are deinflected in partial mode.
        """
        text = kana.to_hiragana(phrase)
        self._phrase = text
        for start in range(len(text)):
            if text[start].isspace():
                continue
            for end in range(start + 1, min(len(text), start + MAX_TERM_LENGTH) + 1):
                if text[end - 1].isspace():
                    break
                self._spans[(start, end)] = self.add(text[start:end], partial=end == len(text))

    def list_candidates(self) -> List[str]:
        """Distinct candidate terms added so far."""
        terms = []
        seen = set()
        for candidate in self._candidates:
            if candidate.term not in seen:
                seen.add(candidate.term)
                terms.append(candidate.term)
        return terms

    # ------------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------------

    def _pattern(self, term: str) -> Pattern:
        pattern = self._patterns.get(term)
        if pattern is None:
            pattern = self._patterns[term] = compile_glob(term)
        return pattern

    def _matched_term(self, candidate: Candidate, entry: Entry) -> Optional[str]:
        if candidate.is_glob:
            pattern = self._pattern(candidate.term)
            for term in entry.terms():
                if pattern.match(term) or pattern.match(kana.to_hiragana(term)):
                    return term
            return None
        for term in entry.terms():
            if term == candidate.term or kana.to_hiragana(term) == candidate.term:
                return term
        return None

    def filter(self, entries: Sequence[Entry], candidates: Optional[Sequence[Candidate]] = None) -> List[Entry]:
        """
        Keep the entries some candidate resolves to, annotated with the match.

        Candidates are ranked by shortest partial suffix, then fewest rules,
        then shortest term. Each entry takes its best candidate; a candidate
        with class constraints only accepts entries tagged with one of them.
        Entries are returned in candidate rank order, ties in input order.
        """
        if candidates is None:
            candidates = self._candidates
        ranked = sorted(candidates, key=Candidate.rank)

        matched = []
        for entry in entries:
            for candidate in ranked:
                text = self._matched_term(candidate, entry)
                if text is None:
                    continue
                if candidate.constraints and not entry.has_rule_tag(self.rules.tags(candidate.constraints)):
                    continue
                match = EntryMatch(
                    mode="deinflect",
                    query=candidate.source,
                    text=text,
                    segments=[(0, len(candidate.prefix))] if candidate.prefix else [],
                    inflected_suffix=candidate.inflected_suffix,
                    rules=candidate.rule_names,
                    partial_suffix=candidate.partial_suffix,
                )
                matched.append((candidate.rank(), entry.with_match(match)))
                break

        matched.sort(key=lambda item: item[0])
        return [entry for _, entry in matched]

    def deinflect_all(self, entries: Sequence[Entry]) -> List[PhraseMatch]:
        """
        Segment the phrase added with add_phrase.

        Scans left to right taking the longest segment with a matching entry;
        characters that start no such segment are skipped.

        Args:
            entries: Entries for all candidate terms of the phrase
        """
        text = self._phrase
        result = []
        start = 0
        while start < len(text):
            end = min(len(text), start + MAX_TERM_LENGTH)
            found = False
            while end > start:
                candidates = self._spans.get((start, end))
                if candidates:
                    matched = self.filter(entries, candidates)
                    if matched:
                        result.append(PhraseMatch(position=start, input=text[start:end], entries=matched))
                        found = True
                        break
                end -= 1
            start = end if found else start + 1
        return result
