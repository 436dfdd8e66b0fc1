"""Tests for the tier predicate compiler."""

import sqlite3

import pytest

from kotoba import schema
from kotoba.predicate import (
    TIERS,
    MatchMode,
    SearchMode,
    Tier,
    compile_query,
    like_pattern,
    plan,
)
from kotoba.query import parse, split_segments
from tests.conftest import make_entry

EXACT_FULL = Tier(MatchMode.EXACT, SearchMode.FULL)


def where(query, tier=EXACT_FULL):
    predicate = compile_query(parse(query), tier)
    return predicate.where if predicate is not None else None


@pytest.fixture
def memory_map():
    """In-memory entries_map with a few forms of 食べる."""
    conn = sqlite3.connect(":memory:")
    schema.create_tables(conn)
    for id, word in [("1", "食べ"), ("2", "食べる"), ("3", "食べた"), ("4", "食べ物"), ("5", "飲む")]:
        entry = make_entry(id, [word], [], [], [])
        conn.executemany(
            "INSERT INTO entries_map (sequence, expr, hiragana, hiragana_rev, keyword, keyword_rev) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            list(schema.map_rows(entry)))
    yield conn
    conn.close()


def run(conn, query, tier=EXACT_FULL):
    predicate = compile_query(parse(query), tier)
    return {row[0] for row in conn.execute(predicate.sql)}


class TestTiers:
    """Tests for the tier table."""

    def test_twelve_tiers_strategy_major(self):
        """Tiers run exact, approx, fuzzy; each full, prefix, suffix, contains."""
        assert len(TIERS) == 12
        assert [t.name for t in TIERS[:4]] == ["exact-full", "exact-prefix", "exact-suffix", "exact-contains"]
        assert TIERS[4].name == "approx-full"
        assert TIERS[-1].name == "fuzzy-contains"

    def test_mode_names(self):
        """Annotation modes drop the redundant parts of the tier name."""
        assert TIERS[0].mode == "exact"
        assert TIERS[1].mode == "prefix"
        assert TIERS[4].mode == "approx"
        assert TIERS[5].mode == "approx-prefix"
        assert TIERS[11].mode == "fuzzy-contains"


class TestKeywordLowering:
    """Tests for single keyword predicates."""

    def test_positional_wrapping(self):
        """Positions anchor the LIKE pattern at none, one or both ends."""
        assert where("いぬ") == "hiragana LIKE 'いぬ'"
        assert where("いぬ", Tier(MatchMode.EXACT, SearchMode.PREFIX)) == "hiragana LIKE 'いぬ%'"
        assert where("いぬ", Tier(MatchMode.EXACT, SearchMode.CONTAINS)) == "hiragana LIKE '%いぬ%'"

    def test_suffix_uses_reversed_column(self):
        """Suffix matching compares against the reversed key."""
        assert where("いぬ", Tier(MatchMode.EXACT, SearchMode.SUFFIX)) == "hiragana_rev LIKE 'ぬい%'"
        assert where("*いぬ", Tier(MatchMode.EXACT, SearchMode.SUFFIX)) == "hiragana_rev LIKE 'ぬい%%'"

    def test_approx_uses_keyword_column(self):
        """Approximate tiers match the approximate key."""
        assert where("とうきょう", Tier(MatchMode.APPROX, SearchMode.FULL)) == "keyword LIKE 'ときよ'"

    def test_fuzzy_allows_gaps(self):
        """Fuzzy tiers allow any characters between the typed ones."""
        tier = Tier(MatchMode.FUZZY, SearchMode.CONTAINS)
        assert where(">いぬ", tier) == "keyword LIKE '%い%ぬ%'"

    def test_query_is_kana_normalized(self):
        """Katakana and romaji keywords match the hiragana column."""
        assert where("イヌ") == "hiragana LIKE 'いぬ'"
        assert where("inu") == "hiragana LIKE 'いぬ'"

    def test_escapes_like_wildcards(self):
        """Literal % and _ are escaped."""
        assert where("100%") == "hiragana LIKE '100\\%' ESCAPE '\\'"
        assert like_pattern(split_segments("1_2"), EXACT_FULL) == ("1\\_2", True)

    def test_escapes_quotes(self):
        """Single quotes are doubled."""
        assert where("犬'") == "hiragana LIKE '犬'''"


class TestEligibility:
    """Tests for exact and fuzzy keyword markers."""

    def test_exact_keyword_skips_approx_and_fuzzy(self):
        """'=犬' never appears in approx or fuzzy tier predicates."""
        predicates = plan(parse("=犬"))
        assert predicates
        assert {p.tier.match for p in predicates} == {MatchMode.EXACT}
        for tier in TIERS[4:]:
            assert compile_query(parse("=犬"), tier) is None

    def test_fuzzy_keyword_in_every_strategy(self):
        """'>いぬ' appears in all three strategy tiers."""
        assert {p.tier.match for p in plan(parse(">いぬ"))} == set(MatchMode)

    def test_normal_keyword_skips_fuzzy(self):
        """Plain keywords are not fuzzy matched."""
        assert {p.tier.match for p in plan(parse("いぬ"))} == {MatchMode.EXACT, MatchMode.APPROX}

    def test_opted_out_keyword_dropped_from_tier(self):
        """Keywords that opt out of a tier are left out of its predicate."""
        tier = Tier(MatchMode.APPROX, SearchMode.FULL)
        assert where("=犬 いぬ", tier) == "keyword LIKE 'いぬ'"

    def test_empty_query_has_no_plan(self):
        """An empty query compiles to nothing."""
        assert plan(parse("")) == []


class TestBooleanLowering:
    """Tests for And/Or/Not lowering."""

    @pytest.mark.parametrize("tier", TIERS, ids=lambda t: t.name)
    def test_negation_law(self, tier):
        """'A !B' compiles to (A) AND (NOT B) for every tier."""
        a = where(">いぬ", tier)
        b = where(">ねこ", tier)
        assert where(">いぬ !>ねこ", tier) == f"({a}) AND (NOT ({b}))"

    @pytest.mark.parametrize("tier", TIERS, ids=lambda t: t.name)
    def test_double_negation(self, tier):
        """'!!A' compiles identically to 'A'."""
        assert where("!!>いぬ", tier) == where(">いぬ", tier)

    def test_or_keeps_negation_outside(self):
        """'A B !C' is (A OR B) AND NOT C."""
        assert where("い ろ !は") == (
            "((hiragana LIKE 'い') OR (hiragana LIKE 'ろ')) AND (NOT (hiragana LIKE 'は'))"
        )

    def test_and_uses_semi_join(self):
        """Only the first conjunct scans the index."""
        assert where("犬&猫") == (
            "(hiragana LIKE '犬') AND "
            "sequence IN (SELECT sequence FROM entries_map WHERE hiragana LIKE '猫')"
        )

    def test_and_not_uses_anti_join(self):
        """A negated conjunct excludes the entry, not only the row."""
        assert where("食べ*~食べ物") == (
            "(hiragana LIKE '食べ%') AND "
            "sequence NOT IN (SELECT sequence FROM entries_map WHERE hiragana LIKE '食べ物')"
        )

    def test_positive_conjuncts_first(self):
        """Negated conjuncts are moved after the positive ones."""
        assert where("~猫&犬").startswith("(hiragana LIKE '犬') AND sequence NOT IN")

    def test_duplicate_tiers_skipped(self):
        """plan() drops tiers whose condition repeats an earlier one."""
        wheres = [p.where for p in plan(parse("いぬ"))]
        assert len(wheres) == len(set(wheres))


class TestGlobFidelity:
    """Compiled predicates evaluated by SQLite."""

    def test_star_matches_zero_or_more(self, memory_map):
        """'食べ*' matches 食べ, 食べる, 食べた and 食べ物."""
        assert run(memory_map, "食べ*") == {"1", "2", "3", "4"}

    def test_any_char_matches_one(self, memory_map):
        """'食べ?' matches exactly one more character."""
        assert run(memory_map, "食べ?") == {"2", "3", "4"}

    def test_leading_star(self, memory_map):
        """'*べる' matches by ending."""
        assert run(memory_map, "*べる") == {"2"}

    def test_suffix_tier(self, memory_map):
        """Suffix tiers match on the reversed column."""
        assert run(memory_map, "べた", Tier(MatchMode.EXACT, SearchMode.SUFFIX)) == {"3"}

    def test_and_not(self, memory_map):
        """Entries matching a '~' conjunct are excluded."""
        assert run(memory_map, "食べ*~食べ物") == {"1", "2", "3"}

    def test_results_ordered_by_length(self, memory_map):
        """Shorter matches come first."""
        predicate = compile_query(parse("食べ*"), EXACT_FULL)
        rows = memory_map.execute(predicate.sql).fetchall()
        assert rows[0][0] == "1"
