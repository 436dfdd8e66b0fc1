#!/usr/bin/env python3
"""
Dictionary Builder for kotoba.

This script builds the SQLite dictionary and its headword index from
JMdict XML.

Usage:
    python scripts/build_dictionary.py [--jmdict PATH] [--output DIR]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from kotoba.config import DATA_DIR, DEFAULT_DATABASE_NAME, DEFAULT_INDEX_NAME
from kotoba.jmdict import import_jmdict

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

DEFAULT_JMDICT = Path(__file__).parent.parent / "data" / "JMdict_e.xml"


def main():
    parser = argparse.ArgumentParser(
        description="Build kotoba dictionary database from JMdict XML"
    )
    parser.add_argument(
        '--jmdict', '-j',
        type=Path,
        default=DEFAULT_JMDICT,
        help=f"Path to JMdict XML file (default: {DEFAULT_JMDICT})"
    )
    parser.add_argument(
        '--output', '-o',
        type=Path,
        default=DATA_DIR,
        help=f"Output directory (default: {DATA_DIR})"
    )
    parser.add_argument(
        '--no-index',
        action='store_true',
        help="Skip building the headword index (built on first open instead)"
    )

    args = parser.parse_args()

    if not args.jmdict.exists():
        logger.error(f"JMdict file not found: {args.jmdict}")
        sys.exit(1)

    db_path = args.output / DEFAULT_DATABASE_NAME
    index_path = None if args.no_index else args.output / DEFAULT_INDEX_NAME

    count, elapsed = import_jmdict(args.jmdict, db_path, index_path)
    logger.info(f"Build completed in {elapsed:.1f} seconds ({count:,} entries)")


if __name__ == '__main__':
    main()
