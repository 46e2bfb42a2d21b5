"""
Import Tokyo 23-ward medical facilities from the MHLW open data.

Usage: python import_facilities.py [--skip-download] [--data-dir DIR]
"""
import argparse
import asyncio
import logging
import os
import sys

from database import async_session, engine
from errors import PersistenceError
from logging_config import setup_logging
from opendata import (
    MHLW_DATA_DIR,
    MhlwOpenDataClient,
    OpenDataError,
    TOKYO_WARDS,
    build_facilities,
    summarize_facilities,
)
from score_repository import replace_facilities

logger = logging.getLogger(__name__)


async def import_facilities(data_dir=MHLW_DATA_DIR, download=True, session_factory=async_session, client=None):
    if download:
        csv_dir = (client or MhlwOpenDataClient()).fetch_all(data_dir)
    else:
        csv_dir = os.path.join(data_dir, 'csv')

    facilities = build_facilities(csv_dir)
    if not facilities:
        raise OpenDataError(f"No 23-ward facilities found in {csv_dir}")

    async with session_factory() as db:
        saved = await replace_facilities(db, facilities)

    by_type, by_ward, departments = summarize_facilities(facilities)
    logger.info("Imported %d facilities with %d departments", saved, departments)
    for facility_type, count in sorted(by_type.items()):
        logger.info("  %s: %d", facility_type, count)
    for ward in TOKYO_WARDS:
        logger.info("  %s: %d", ward, by_ward.get(ward, 0))
    logger.info("Next step: run calculate_scores.py")
    return saved


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--skip-download', action='store_true', help='use CSVs already extracted under DATA_DIR/csv')
    parser.add_argument('--data-dir', default=MHLW_DATA_DIR)
    return parser.parse_args(argv)


async def main(argv=None):
    args = parse_args(argv)
    try:
        await import_facilities(args.data_dir, download=not args.skip_download)
    except (OpenDataError, PersistenceError) as e:
        logger.error("Import failed: %s", e)
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
