"""Tests for the JMdict importer."""

import sqlite3

import pytest

from kotoba import entries as entry_store
from kotoba import tags as tag_store
from kotoba.index import HeadwordIndex
from kotoba.jmdict import import_jmdict, parse_entity_definitions, parse_entries

JMDICT = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE JMdict [
<!ENTITY n "noun (common) (futsuumeishi)">
<!ENTITY v1 "Ichidan verb">
<!ENTITY vt "transitive verb">
<!ENTITY uk "word usually written using kana alone">
]>
<JMdict>
<entry>
<ent_seq>1358280</ent_seq>
<k_ele>
<keb>食べる</keb>
<ke_pri>ichi1</ke_pri>
<ke_pri>news1</ke_pri>
</k_ele>
<r_ele>
<reb>たべる</reb>
<re_pri>ichi1</re_pri>
</r_ele>
<sense>
<pos>&v1;</pos>
<pos>&vt;</pos>
<gloss>to eat</gloss>
<gloss xml:lang="ger">essen</gloss>
</sense>
<sense>
<gloss>to live on (e.g. a salary)</gloss>
</sense>
<sense>
<gloss xml:lang="ger">fressen</gloss>
</sense>
</entry>
<entry>
<ent_seq>1000010</ent_seq>
<k_ele>
<keb>無読</keb>
</k_ele>
</entry>
<entry>
<ent_seq>1049180</ent_seq>
<r_ele>
<reb>コーヒー</reb>
</r_ele>
<sense>
<pos>&n;</pos>
<misc>&uk;</misc>
<lsource xml:lang="dut">koffie</lsource>
<lsource ls_type="part" ls_wasei="y">cafe</lsource>
<gloss g_type="lit">coffee</gloss>
</sense>
</entry>
</JMdict>
"""


@pytest.fixture
def jmdict_path(tmp_path):
    path = tmp_path / "JMdict_e.xml"
    path.write_text(JMDICT, encoding="utf-8")
    tag_store.clear_cache()
    yield path
    tag_store.clear_cache()


@pytest.fixture
def parsed(jmdict_path):
    return {e.id: e for e in parse_entries(jmdict_path)}


class TestEntities:
    """Tests for parse_entity_definitions()."""

    def test_parse(self, jmdict_path):
        """Entity names map to their labels."""
        entities = parse_entity_definitions(jmdict_path)
        assert entities["v1"] == "Ichidan verb"
        assert set(entities) == {"n", "v1", "vt", "uk"}


class TestParseEntries:
    """Tests for parse_entries()."""

    def test_skips_entries_without_reading(self, parsed):
        """Entries with no r_ele are dropped."""
        assert sorted(parsed) == ["1049180", "1358280"]

    def test_forms(self, parsed):
        """Kanji and reading forms keep their priority tags."""
        entry = parsed["1358280"]
        assert entry.word() == "食べる"
        assert entry.read() == "たべる"
        assert [t.name for t in entry.kanji[0].priority] == ["ichi1", "news1"]

    def test_entities_resolved_to_names(self, parsed):
        """Expanded entity text is mapped back to the tag name."""
        pos = parsed["1358280"].sense[0].pos
        assert [t.name for t in pos] == ["v1", "vt"]
        assert pos[0].text == "Ichidan verb"

    def test_pos_inherited(self, parsed):
        """A sense without pos inherits the previous sense's."""
        assert [t.name for t in parsed["1358280"].sense[1].pos] == ["v1", "vt"]

    def test_english_glosses_only(self, parsed):
        """Other languages are dropped, as are senses left empty."""
        senses = parsed["1358280"].sense
        assert len(senses) == 2
        assert [g.text for g in senses[0].glossary] == ["to eat"]

    def test_sense_details(self, parsed):
        """misc, lsource and gloss type are kept."""
        sense = parsed["1049180"].sense[0]
        assert [t.name for t in sense.misc] == ["uk"]
        assert sense.glossary[0].type == "lit"
        dutch, partial = sense.source
        assert (dutch.text, dutch.lang, dutch.partial, dutch.wasei) == ("koffie", "dut", False, False)
        assert (partial.lang, partial.partial, partial.wasei) == ("eng", True, True)


class TestImport:
    """Tests for import_jmdict()."""

    def test_import(self, jmdict_path, tmp_path):
        """The database, tag table and headword index are written."""
        db_path = tmp_path / "out" / "dict.db"
        idx_path = tmp_path / "out" / "dict.idx"
        count, elapsed = import_jmdict(jmdict_path, db_path, idx_path)
        assert count == 2
        assert elapsed >= 0

        conn = sqlite3.connect(str(db_path))
        try:
            assert tag_store.all_tags(conn)["uk"].text == "word usually written using kana alone"
            entry = entry_store.by_ids(conn, ["1358280"])[0]
            assert entry.popular
            assert [g.text for g in entry.sense[1].glossary] == ["to live on (e.g. a salary)"]
        finally:
            conn.close()

        index = HeadwordIndex.load(idx_path)
        assert index.lookup("食べる") == ["1358280"]
        assert index.lookup("こーひー") == ["1049180"]

    def test_replaces_existing(self, jmdict_path, tmp_path):
        """Importing twice replaces the earlier database."""
        db_path = tmp_path / "dict.db"
        import_jmdict(jmdict_path, db_path)
        import_jmdict(jmdict_path, db_path)
        conn = sqlite3.connect(str(db_path))
        try:
            assert entry_store.count(conn) == 2
        finally:
            conn.close()

    def test_missing_file(self, tmp_path):
        """A missing JMdict file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            import_jmdict(tmp_path / "missing.xml", tmp_path / "dict.db")
