"""
Script to print the most polluted cities of a country as JSON
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from api.dependencies import build_service
from core.logging import setup_logging
from models.base import SupportedCountry
from schemas.api import QueryError

logger = logging.getLogger(__name__)


async def fetch_cities(country: str, limit: int, page: int) -> int:
    """Run one city query and print the payload; returns the exit code"""
    service = build_service()
    aggregator = service.aggregator

    try:
        result = await service.query(country, limit=limit, page=page)
        print(result.model_dump_json(indent=2))

        stats = service.cache_stats()
        logger.info(f"Cache: {stats}")

        if isinstance(result, QueryError):
            logger.error(f"Query failed: {result.error}")
            return 1
        return 0
    finally:
        await aggregator.pollution.aclose()
        await aggregator.wikipedia.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("country", choices=[c.value for c in SupportedCountry])
    parser.add_argument("--limit", type=int, default=10)
    parser.add_argument("--page", type=int, default=1)
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(fetch_cities(args.country, args.limit, args.page)))


if __name__ == "__main__":
    main()
