"""
Random sample restaurants and reviews, for populating an empty database.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timedelta, timezone

from backend.db import DbClient
from backend.errors import RestaurantError

logger = logging.getLogger(__name__)

RESTAURANT_NAMES = [
    "Savory Bites",
    "Gourmet Delight",
    "Wholesome Kitchen",
    "Cheesy Cravings",
    "Spice Fusion",
    "Burger Bonanza",
    "Pasta Paradise",
    "Taco Tango",
    "Sushi Sensation",
    "Pizza Pizzazz",
    "Cafe Mocha",
    "Mouthwatering BBQ",
    "Thai Temptations",
    "Sizzling Steaks",
    "Veggie Heaven",
    "Seafood Symphony",
    "Wok & Roll",
    "French Delicacies",
    "Tandoori Nights",
    "Mediterranean Magic",
]

RESTAURANT_CATEGORIES = [
    "Italian",
    "Chinese",
    "Japanese",
    "Mexican",
    "Indian",
    "Mediterranean",
    "Caribbean",
    "Cajun",
    "German",
    "Russian",
    "Cuban",
    "Organic",
    "Tapas",
]

RESTAURANT_CITIES = [
    "New York",
    "Los Angeles",
    "London",
    "Paris",
    "Tokyo",
    "Mumbai",
    "Dubai",
    "Amsterdam",
    "Seoul",
    "Singapore",
    "Istanbul",
]

RESTAURANT_REVIEWS = [
    ("The food was exceptional, absolutely loved it!", 5),
    ("Delicious dishes and excellent service!", 5),
    ("The flavors were so rich and satisfying.", 5),
    ("Great ambiance and friendly staff.", 4),
    ("Generous portions, left feeling satisfied.", 4),
    ("Tasty food, but the service could be quicker.", 3),
    ("Decent food, nothing special.", 3),
    ("The dessert was the highlight of the meal.", 4),
    ("Overpriced for what you get.", 2),
    ("The food was cold when it arrived.", 1),
    ("Long wait and the order was wrong.", 1),
    ("Fresh ingredients and creative menu.", 5),
    ("Good value for money, will come back.", 4),
    ("Too salty for my taste.", 2),
]

PHOTO_URL = "https://storage.googleapis.com/firestorequickstarts.appspot.com/food_{index}.png"
MAX_REVIEWS_PER_RESTAURANT = 5


def _random_date_before(rng: random.Random, now: datetime) -> datetime:
    return now - timedelta(days=rng.randint(1, 90), seconds=rng.randint(0, 86400))


def _random_date_after(rng: random.Random, start: datetime, now: datetime) -> datetime:
    span = max(int((now - start).total_seconds()), 1)
    return start + timedelta(seconds=rng.randint(0, span))


def generate_sample_restaurants_and_reviews(
    count: int, rng: random.Random | None = None
) -> list[tuple[dict, list[dict]]]:
    """
    Generates `count` restaurants, each with up to five reviews.

    Returns:
        A list of (restaurant document, rating documents) pairs, with the
        restaurant's aggregate fields matching its ratings.
    """
    rng = rng or random.Random()
    now = datetime.now(timezone.utc)
    data = []
    for _ in range(count):
        restaurant_timestamp = _random_date_before(rng, now)

        ratings_data = []
        for _ in range(rng.randint(0, MAX_REVIEWS_PER_RESTAURANT)):
            text, rating = rng.choice(RESTAURANT_REVIEWS)
            ratings_data.append(
                {
                    "rating": float(rating),
                    "text": text,
                    "userId": f"User #{rng.randint(1, 1000)}",
                    "timestamp": _random_date_after(rng, restaurant_timestamp, now),
                }
            )

        sum_rating = sum(r["rating"] for r in ratings_data)
        num_ratings = len(ratings_data)
        restaurant_data = {
            "name": rng.choice(RESTAURANT_NAMES),
            "category": rng.choice(RESTAURANT_CATEGORIES),
            "city": rng.choice(RESTAURANT_CITIES),
            "price": rng.randint(1, 4),
            "avgRating": sum_rating / num_ratings if num_ratings else 0.0,
            "numRatings": num_ratings,
            "sumRating": sum_rating,
            "photo": PHOTO_URL.format(index=rng.randint(1, 22)),
            "timestamp": restaurant_timestamp,
        }
        data.append((restaurant_data, ratings_data))
    return data


def add_sample_restaurants_and_reviews(
    db: DbClient, count: int, rng: random.Random | None = None
) -> list[str]:
    """Writes sample restaurants; a failed restaurant is logged and skipped."""
    added = []
    for restaurant_data, ratings_data in generate_sample_restaurants_and_reviews(
        count, rng
    ):
        try:
            added.append(db.add_restaurant(restaurant_data, ratings_data))
        except RestaurantError as e:
            logger.error(f"There was an error adding the document: {e}")
    logger.info(f"Added {len(added)} sample restaurants")
    return added
