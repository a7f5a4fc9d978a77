"""
CLI helper to add random sample restaurants and reviews to the configured database.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import get_settings
from backend.dependencies import get_db_client
from backend.sample_data import add_sample_restaurants_and_reviews

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed sample restaurants")
    parser.add_argument(
        "-n",
        "--num",
        type=int,
        default=None,
        help="How many restaurants to add (defaults to SAMPLE_RESTAURANT_COUNT)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed, for reproducible sample data",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)

    settings = get_settings()
    count = args.num or settings.sample_restaurant_count
    rng = random.Random(args.seed) if args.seed is not None else None
    added = add_sample_restaurants_and_reviews(get_db_client(), count, rng)
    logger.info(f"Seeded {len(added)} of {count} restaurants")
    return 0 if added else 1


if __name__ == "__main__":
    sys.exit(main())
