#!/usr/bin/env python3
"""
Initialise the book catalog database.
Creates the books collection validator and indexes, then reports the record count.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from catalog.database import BookStore
from catalog.exceptions import StoreUnavailable
from utilities.config import config
from utilities.logger import setup_logging, get_logger


async def main() -> int:
    """Connect, create schema objects and disconnect."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    logger = get_logger(__name__)
    logger.info("Setting up book catalog database", database=config.mongodb_database)

    store = None
    try:
        store = await BookStore.connect(
            config.mongodb_url,
            config.mongodb_database,
            config.mongodb_collection,
            timeout_ms=config.mongodb_timeout_ms,
        )
        await store.ensure_schema()

        health = await store.health_check()
        logger.info("Database setup completed", books_count=health.get("books_count"))
        return 0

    except StoreUnavailable:
        logger.error("Database setup failed")
        return 1

    finally:
        if store:
            await store.disconnect()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
