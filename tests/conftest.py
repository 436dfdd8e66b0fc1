"""Shared test fixtures."""
import sqlite3

import pytest

from kotoba import schema
from kotoba import tags as tag_store
from kotoba.cache import SearchCache
from kotoba.db import Database
from kotoba.entries import Entry, EntryKanji, EntryReading, EntrySense, Glossary
from kotoba.index import HeadwordIndex
from kotoba.inflection import RuleTable, load_rules
from kotoba.search import Engine
from kotoba.tags import Tag

TAGS = [
    ("n", "noun (common) (futsuumeishi)"),
    ("v1", "Ichidan verb"),
    ("v5m", "Godan verb with 'mu' ending"),
    ("v5k-s", "Godan verb - Iku/Yuku special class"),
    ("adj-i", "adjective (keiyoushi)"),
    ("vt", "transitive verb"),
    ("vi", "intransitive verb"),
]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_entry(id, kanji, readings, pos, glosses, priority=()):
    """Build an entry with one sense; readings may be (text, restrict) pairs."""
    reading_list = []
    for r in readings:
        if isinstance(r, tuple):
            reading_list.append(EntryReading(r[0], restrict=list(r[1])))
        else:
            reading_list.append(EntryReading(r, priority=[Tag(p, "") for p in priority]))
    return Entry(
        id=id,
        kanji=[EntryKanji(k, priority=[Tag(p, "") for p in priority]) for k in kanji],
        reading=reading_list,
        sense=[EntrySense(pos=[Tag(p, "") for p in pos], glossary=[Glossary(g) for g in glosses])],
    )


def sample_entries():
    return [
        make_entry("1000", ["犬"], ["いぬ"], ["n"], ["dog"], ["ichi1", "news1", "nf10"]),
        make_entry("1001", ["食べる"], ["たべる"], ["v1", "vt"], ["to eat"], ["ichi1", "news1", "nf05"]),
        make_entry("1002", ["食べ物"], ["たべもの"], ["n"], ["food"], ["ichi1"]),
        make_entry("1003", ["飲む"], ["のむ"], ["v5m", "vt"], ["to drink"]),
        make_entry("1004", ["行く"], ["いく"], ["v5k-s", "vi"], ["to go"]),
        make_entry("1005", ["高い"], ["たかい"], ["adj-i"], ["high", "expensive"]),
        make_entry("1006", ["猫"], ["ねこ"], ["n"], ["cat"]),
        make_entry("1007", [], ["ラーメン"], ["n"], ["ramen"]),
        make_entry("1008", ["東京"], ["とうきょう"], ["n"], ["Tokyo"]),
        make_entry("1009", ["子犬"], ["こいぬ"], ["n"], ["puppy"]),
        make_entry("1010", ["魚"], ["さかな"], ["n"], ["fish"]),
        make_entry("1011", ["日本", "日の本"], [("にほん", ["日本"]), ("ひのもと", ["日の本"])], ["n"], ["Japan"]),
    ]


@pytest.fixture
def entries():
    return sample_entries()


@pytest.fixture
def dictionary_path(tmp_path):
    """Temporary SQLite dictionary with the sample entries."""
    tag_store.clear_cache()
    path = tmp_path / "dict.db"
    conn = sqlite3.connect(str(path))
    schema.write_database(conn, sample_entries(), TAGS)
    conn.close()
    yield path
    tag_store.clear_cache()


@pytest.fixture
def conn(dictionary_path):
    connection = sqlite3.connect(str(dictionary_path))
    yield connection
    connection.close()


@pytest.fixture(scope="session")
def rules():
    return load_rules()


@pytest.fixture
def small_rules():
    return RuleTable.from_dict({
        "past": [
            {"kanaIn": "た", "kanaOut": "る", "rulesIn": [], "rulesOut": ["v1"]},
            {"kanaIn": "んだ", "kanaOut": "む", "rulesIn": [], "rulesOut": ["v5"]},
        ],
        "polite": [
            {"kanaIn": "ます", "kanaOut": "る", "rulesIn": ["masu"], "rulesOut": ["v1"]},
        ],
        "polite past": [
            {"kanaIn": "ました", "kanaOut": "ます", "rulesIn": [], "rulesOut": ["masu"]},
        ],
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(dictionary_path, rules, clock):
    database = Database(dictionary_path, size=2, timeout=5.0)
    index = database.execute(HeadwordIndex.from_database)
    engine = Engine(database, index, rules, cache=SearchCache(clock=clock))
    yield engine
    engine.close()
