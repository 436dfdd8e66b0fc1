"""
CLI interface for kotoba.

Usage:
    kotoba "食べ*"
    kotoba --deinflect "食べさせられなかった"
    kotoba --phrase "猫が魚を食べた"
    kotoba --json "=犬"
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from kotoba import __version__
from kotoba.config import Settings
from kotoba.deinflect import PhraseMatch
from kotoba.entries import Entry
from kotoba.search import Engine

MAX_GLOSSES = 3


# ============================================================================
# Output Formatting
# ============================================================================

def format_entry(entry: Entry) -> str:
    """
    Compact two-part form:

        食べる【たべる】 (v1, vt) [exact]
          1. to eat
    """
    word, reading = entry.word(), entry.read()
    head = f"{word}【{reading}】" if reading and reading != word else word

    parts = [head]
    pos = [t.name for t in entry.sense[0].pos] if entry.sense else []
    if pos:
        parts.append(f"({', '.join(pos)})")
    if entry.match is not None:
        if entry.match.rules:
            parts.append(f"← {entry.match.query}")
            parts.append(f"[{' → '.join(entry.match.rules)}]")
        else:
            parts.append(f"[{entry.match.mode}]")

    lines = [" ".join(parts)]
    for i, sense in enumerate(entry.sense[:MAX_GLOSSES], 1):
        lines.append(f"  {i}. " + "; ".join(g.text for g in sense.glossary))
    return "\n".join(lines)


def format_text(entries: List[Entry]) -> str:
    if not entries:
        return "No entries found."
    return "\n".join(format_entry(e) for e in entries)


def format_phrase(matches: List[PhraseMatch]) -> str:
    if not matches:
        return "No entries found."
    lines = [" | ".join(m.input for m in matches)]
    lines.append("─" * 40)
    for m in matches:
        entry = m.entries[0]
        lines.append(f"{m.position}: {format_entry(entry)}")
    return "\n".join(lines)


def format_json(entries: List[Entry]) -> str:
    return json.dumps([e.to_dict() for e in entries], ensure_ascii=False, indent=2)


def format_phrase_json(matches: List[PhraseMatch]) -> str:
    data = [
        {
            "position": m.position,
            "input": m.input,
            "entries": [e.to_dict() for e in m.entries],
        }
        for m in matches
    ]
    return json.dumps(data, ensure_ascii=False, indent=2)


# ============================================================================
# Main
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kotoba",
        description="Japanese dictionary lookup",
    )
    parser.add_argument(
        "query",
        nargs="?",
        help="Query text (read from stdin if omitted)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="Dictionary database (default: KOTOBA_DATABASE or the bundled data directory)",
    )
    parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Index of the first result (default: 0)",
    )
    parser.add_argument(
        "--limit", "-n",
        type=int,
        default=20,
        help="Maximum number of results (default: 20)",
    )
    parser.add_argument(
        "--deinflect", "-d",
        action="store_true",
        help="Look up the dictionary form of an inflected word",
    )
    parser.add_argument(
        "--phrase", "-p",
        action="store_true",
        help="Split a phrase into dictionary words",
    )
    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log progress to stderr",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"kotoba {__version__}",
    )
    return parser


def _settings(db: Optional[Path]) -> Settings:
    if db is None:
        return Settings.from_env()
    return Settings.from_env(database_path=db, index_path=db.with_suffix(".idx"))


async def run(args: argparse.Namespace, query: str) -> str:
    async with Engine.open(_settings(args.db)) as engine:
        if args.phrase:
            matches = await engine.deinflect_all(query)
            return format_phrase_json(matches) if args.json else format_phrase(matches)

        if args.deinflect:
            entries = await engine.deinflect(query)
            entries = entries[args.offset:args.offset + args.limit]
        else:
            page = await engine.search(query).page(args.offset, args.limit)
            entries = page.entries
        return format_json(entries) if args.json else format_text(entries)


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    if args.query is None:
        # Read from stdin
        query = sys.stdin.read().strip()
    else:
        query = args.query.strip()

    if not query:
        parser.print_help()
        sys.exit(1)

    try:
        print(asyncio.run(run(args, query)))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
