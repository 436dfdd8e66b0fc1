"""
Inflection rule table.

Rules are read from a JSON file keyed by rule name, each name holding a
list of variants::

    {"past": [{"kanaIn": "た", "kanaOut": "る", "rulesIn": [], "rulesOut": ["v1"]}]}

`kanaIn` is the inflected suffix, `kanaOut` its replacement. `rulesIn` are
the grammatical classes the inflected form must belong to for the rule to
chain (empty: the rule only applies to the surface form itself), and
`rulesOut` the classes of the deinflected result.

Class tags are interned to bit positions so constraint sets are plain ints.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from kotoba.config import DEFAULT_RULES_PATH

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Rule:
    """
    A single inflection rule.

    Attributes:
        name: Rule name (e.g. "past", "polite negative")
        suffix_in: Inflected suffix matched against the term's tail
        suffix_out: Replacement suffix
        classes_in: Bitset of classes the inflected term must carry
        classes_out: Bitset of classes of the deinflected term
    """
    name: str
    suffix_in: str
    suffix_out: str
    classes_in: int
    classes_out: int


class RuleTable:
    """Immutable set of rules with interned class tags."""

    def __init__(self, rules: Iterable[Rule], class_tags: Sequence[str]):
        self.rules: Tuple[Rule, ...] = tuple(rules)
        self.class_tags: Tuple[str, ...] = tuple(class_tags)
        self._bits: Dict[str, int] = {tag: 1 << i for i, tag in enumerate(self.class_tags)}

        by_last: Dict[str, List[Rule]] = {}
        for rule in self.rules:
            by_last.setdefault(rule.suffix_in[-1], []).append(rule)
        self._by_last: Dict[str, Tuple[Rule, ...]] = {k: tuple(v) for k, v in by_last.items()}

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def mask(self, tags: Iterable[str]) -> int:
        """Bitset for class tag names; unknown tags are ignored."""
        bits = 0
        for tag in tags:
            bits |= self._bits.get(tag, 0)
        return bits

    def tags(self, mask: int) -> List[str]:
        """Class tag names set in a bitset."""
        return [tag for tag, bit in self._bits.items() if mask & bit]

    def ending_with(self, term: str) -> Tuple[Rule, ...]:
        """Rules whose suffix_in could be a suffix of term (same last character)."""
        if not term:
            return ()
        return self._by_last.get(term[-1], ())

    @classmethod
    def from_dict(cls, data: Dict[str, List[dict]]) -> "RuleTable":
        class_tags: List[str] = []
        seen = set()

        def intern(tags: Iterable[str]):
            for tag in tags:
                if tag not in seen:
                    seen.add(tag)
                    class_tags.append(tag)

        for variants in data.values():
            for variant in variants:
                intern(variant.get("rulesIn", []))
                intern(variant.get("rulesOut", []))

        bits = {tag: 1 << i for i, tag in enumerate(class_tags)}

        def to_mask(tags: Iterable[str]) -> int:
            mask = 0
            for tag in tags:
                mask |= bits[tag]
            return mask

        rules = []
        for name, variants in data.items():
            for variant in variants:
                suffix_in = variant["kanaIn"]
                if not suffix_in:
                    raise ValueError(f"Rule {name!r} has an empty kanaIn")
                rules.append(Rule(
                    name=name,
                    suffix_in=suffix_in,
                    suffix_out=variant["kanaOut"],
                    classes_in=to_mask(variant.get("rulesIn", [])),
                    classes_out=to_mask(variant.get("rulesOut", [])),
                ))
        return cls(rules, class_tags)

    @classmethod
    def from_json(cls, path: Path) -> "RuleTable":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        table = cls.from_dict(data)
        logger.debug(f"Loaded {len(table)} inflection rules from {path}")
        return table


def load_rules(path: Optional[Path] = None) -> RuleTable:
    """
    Load the inflection rule table.

    Args:
        path: JSON rule file. Uses the bundled table if not specified.

    Returns:
        RuleTable

    Raises:
        FileNotFoundError: If the rule file doesn't exist
    """
    if path is None:
        path = DEFAULT_RULES_PATH
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Inflection rules not found at {path}")
    return RuleTable.from_json(path)
