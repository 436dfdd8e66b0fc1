"""
JMdict importer.

Parses the JMdict XML with lxml (entities are expanded by the DTD and
mapped back to their short names), writes the SQLite dictionary through
kotoba.schema and saves the headword index next to it.
"""

import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from lxml import etree

from kotoba import schema
from kotoba.entries import (
    Entry,
    EntryKanji,
    EntryReading,
    EntrySense,
    Glossary,
    SenseSource,
)
from kotoba.index import HeadwordIndex
from kotoba.tags import Tag

logger = logging.getLogger(__name__)

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"

_ENTITY_RE = re.compile(rb'<!ENTITY\s+([\w-]+)\s+"([^"]*)"\s*>')
_BUILTIN_ENTITIES = ('lt', 'gt', 'amp', 'apos', 'quot')


def parse_entity_definitions(xml_path: Path) -> Dict[str, str]:
    """Parse entity definitions (name -> label) from the JMdict DTD."""
    with open(xml_path, 'rb') as f:
        content = b''
        for line in f:
            content += line
            if b']>' in line:
                break

    entities = {}
    for match in _ENTITY_RE.finditer(content):
        name = match.group(1).decode('utf-8')
        value = match.group(2).decode('utf-8')
        if name not in _BUILTIN_ENTITIES:
            entities[name] = value
    return entities


def node_text(elem) -> str:
    """Get all text from element."""
    return ''.join(elem.itertext())


class _TagResolver:
    """Maps expanded entity labels back to tag names."""

    def __init__(self, entities: Dict[str, str]):
        self._names = {label: name for name, label in entities.items()}

    def __call__(self, elems) -> List[Tag]:
        tags = []
        for elem in elems:
            text = node_text(elem)
            name = self._names.get(text, text)
            tags.append(Tag(name, text if name != text else ""))
        return tags


def _texts(elems) -> List[str]:
    return [node_text(e) for e in elems]


def _parse_entry(elem, tags: _TagResolver) -> Optional[Entry]:
    seq_elem = elem.find('ent_seq')
    if seq_elem is None:
        return None
    entry = Entry(id=node_text(seq_elem).strip())

    for k_elem in elem.findall('k_ele'):
        keb = k_elem.find('keb')
        if keb is None:
            continue
        entry.kanji.append(EntryKanji(
            expr=node_text(keb),
            info=tags(k_elem.findall('ke_inf')),
            priority=[Tag(p, "") for p in _texts(k_elem.findall('ke_pri'))],
        ))

    for r_elem in elem.findall('r_ele'):
        reb = r_elem.find('reb')
        if reb is None:
            continue
        entry.reading.append(EntryReading(
            expr=node_text(reb),
            no_kanji=r_elem.find('re_nokanji') is not None,
            restrict=_texts(r_elem.findall('re_restr')),
            info=tags(r_elem.findall('re_inf')),
            priority=[Tag(p, "") for p in _texts(r_elem.findall('re_pri'))],
        ))

    if not entry.reading:
        return None

    pos: List[Tag] = []
    for s_elem in elem.findall('sense'):
        sense_pos = tags(s_elem.findall('pos'))
        # A sense without part of speech inherits the previous one
        if sense_pos:
            pos = sense_pos
        sense = EntrySense(
            pos=list(pos),
            misc=tags(s_elem.findall('misc')),
            dialect=tags(s_elem.findall('dial')),
            info=_texts(s_elem.findall('s_inf')),
            xref=_texts(s_elem.findall('xref')),
            antonym=_texts(s_elem.findall('ant')),
            stag_kanji=_texts(s_elem.findall('stagk')),
            stag_reading=_texts(s_elem.findall('stagr')),
            field=tags(s_elem.findall('field')),
        )
        for src in s_elem.findall('lsource'):
            sense.source.append(SenseSource(
                text=node_text(src),
                lang=src.get(XML_LANG, 'eng'),
                partial=src.get('ls_type') == 'part',
                wasei=src.get('ls_wasei') == 'y',
            ))
        for gloss in s_elem.findall('gloss'):
            if gloss.get(XML_LANG, 'eng') != 'eng':
                continue
            sense.glossary.append(Glossary(node_text(gloss), gloss.get('g_type')))
        if sense.glossary:
            entry.sense.append(sense)

    return entry


def parse_entries(xml_path: Path, entities: Optional[Dict[str, str]] = None) -> Iterator[Entry]:
    """
    Stream entries from a JMdict XML file.

    Args:
        xml_path: JMdict XML file
        entities: Entity definitions; parsed from the file's DTD if omitted
    """
    if entities is None:
        entities = parse_entity_definitions(xml_path)
    tags = _TagResolver(entities)

    context = etree.iterparse(
        str(xml_path),
        events=('end',),
        tag='entry',
        recover=True,
        load_dtd=True,
        no_network=True,
    )

    count = 0
    skipped = 0
    for event, elem in context:
        entry = _parse_entry(elem, tags)
        if entry is None:
            skipped += 1
        else:
            count += 1
            if count % 10000 == 0:
                logger.info(f"  Parsed {count} entries...")
            yield entry

        elem.clear()
        while elem.getprevious() is not None:
            del elem.getparent()[0]

    if skipped:
        logger.warning(f"Skipped {skipped} entries without sequence id or reading")
    logger.info(f"Parsed {count} entries")


def import_jmdict(
    xml_path: Path,
    db_path: Path,
    index_path: Optional[Path] = None,
) -> Tuple[int, float]:
    """
    Build the dictionary database (and headword index) from JMdict.

    An existing database at db_path is replaced.

    Returns:
        Tuple of (entry_count, elapsed_seconds)

    Raises:
        FileNotFoundError: If the JMdict file doesn't exist
    """
    xml_path, db_path = Path(xml_path), Path(db_path)
    if not xml_path.exists():
        raise FileNotFoundError(f"JMdict file not found: {xml_path}")

    start_time = time.time()

    logger.info("Parsing entity definitions...")
    entities = parse_entity_definitions(xml_path)

    logger.info(f"Parsing JMdict entries from {xml_path}...")
    entries = list(parse_entries(xml_path, entities))

    db_path.parent.mkdir(parents=True, exist_ok=True)
    if db_path.exists():
        db_path.unlink()

    conn = sqlite3.connect(str(db_path))
    try:
        count = schema.write_database(conn, entries, entities.items())
        if index_path is not None:
            index = HeadwordIndex.from_database(conn)
            index.save(Path(index_path))
            logger.info(f"Saved headword index to {index_path} ({len(index):,} keys)")
    finally:
        conn.close()

    elapsed = time.time() - start_time
    logger.info(f"Imported {count:,} entries into {db_path} in {elapsed:.1f} seconds")
    return count, elapsed
