"""
Import tracked sources from a CSV file.

Columns: hotel_id, user_id (optional), provider, source_locator
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, engine
from core.exceptions import SourceRegistryError
from core.logging import setup_logging
from refresh.registry import load_sources_csv, register_sources

setup_logging()
logger = logging.getLogger(__name__)


async def import_sources(file_path: str) -> int:
    try:
        rows = load_sources_csv(file_path)
    except SourceRegistryError as e:
        logger.error(f"Cannot import sources: {e.message}")
        return 1

    try:
        async with async_session_maker() as session:
            created = await register_sources(session, rows)
    finally:
        await engine.dispose()

    logger.info(f"Imported {created} sources from {file_path}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import tracked sources from CSV")
    parser.add_argument("csv_path", help="Path to the sources CSV file")
    args = parser.parse_args()
    sys.exit(asyncio.run(import_sources(args.csv_path)))
