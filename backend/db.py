"""
Data access for the `restaurants` collection and its `ratings` sub-collection.

Firestore is the production backend; an in-memory implementation with the
same contract backs local development and tests.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from backend.errors import (
    BackendUnavailable,
    InvalidArgument,
    RestaurantError,
    RestaurantNotFound,
)
from shared.constants import SORT_BY_REVIEW
from shared.firebase_constants import RATINGS_COLLECTION, RESTAURANTS_COLLECTION
from shared.types import (
    Rating,
    Restaurant,
    RestaurantFilters,
    ReviewInput,
    rating_from_document,
    restaurant_from_document,
)

logger = logging.getLogger(__name__)

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"


def apply_query_filters(query, filters: RestaurantFilters | None = None):
    """
    Applies the listing filters to a query over the restaurants collection.

    Each non-empty filter adds one independent equality predicate. The price
    filter is given as a run of currency symbols and matches on its length
    ("$$" matches price tier 2). Results are ordered by number of ratings when
    `sort` is SORT_BY_REVIEW, and by average rating for SORT_BY_RATING or any
    other value.

    Works with Firestore queries and with `InMemoryQuery`.
    """
    filters = filters or RestaurantFilters()
    if filters.category:
        query = query.where(filter=FieldFilter("category", "==", filters.category))
    if filters.city:
        query = query.where(filter=FieldFilter("city", "==", filters.city))
    if filters.price:
        query = query.where(filter=FieldFilter("price", "==", len(filters.price)))
    if filters.sort == SORT_BY_REVIEW:
        query = query.order_by("numRatings", direction=DESCENDING)
    else:
        query = query.order_by("avgRating", direction=DESCENDING)
    return query


def rating_aggregate_update(restaurant_data: dict | None, rating: float) -> dict:
    """Returns the aggregate fields of a restaurant after adding one rating."""
    data = restaurant_data or {}
    num_ratings = (data.get("numRatings") or 0) + 1
    sum_rating = (data.get("sumRating") or 0) + float(rating)
    return {
        "numRatings": num_ratings,
        "sumRating": sum_rating,
        "avgRating": sum_rating / num_ratings,
    }


def _validate_review(restaurant_id: str | None, review: ReviewInput | None) -> None:
    if not restaurant_id:
        raise InvalidArgument("No restaurant ID has been provided.")
    if not review:
        raise InvalidArgument("A valid review has not been provided.")
    try:
        float(review.rating)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"Rating must be a number, got {review.rating!r}.") from e


def _is_callable(callback) -> bool:
    if callable(callback):
        return True
    logger.error("Error: The callback parameter is not a function")
    return False


class Subscription:
    """Handle returned by the subscribe_* methods; call `unsubscribe` to release it."""

    def __init__(self, release: Callable[[], None]):
        self._release = release
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._release()


SnapshotCallback = Callable[[Any], None]


class DbClient(Protocol):
    """Interface for restaurant and rating data access."""

    def get_restaurants(
        self, filters: RestaurantFilters | None = None
    ) -> list[Restaurant]:
        ...

    def get_restaurant_by_id(self, restaurant_id: str) -> Optional[Restaurant]:
        ...

    def get_reviews_by_restaurant_id(self, restaurant_id: str) -> list[Rating]:
        ...

    def add_review_to_restaurant(
        self, restaurant_id: str, review: ReviewInput
    ) -> None:
        ...

    def update_restaurant_image_reference(
        self, restaurant_id: str, public_image_url: str
    ) -> None:
        ...

    def add_restaurant(
        self, restaurant_data: dict, ratings_data: list[dict] | None = None
    ) -> str:
        ...

    def subscribe_restaurants(
        self, callback: SnapshotCallback, filters: RestaurantFilters | None = None
    ) -> Optional[Subscription]:
        ...

    def subscribe_restaurant(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        ...

    def subscribe_reviews(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        ...


def _update_with_rating(transaction, restaurant_ref, rating_ref, review: ReviewInput):
    """
    Transaction body: reads the restaurant aggregate, writes the new aggregate
    and creates the rating document. Firestore retries it on conflicting reads.
    """
    snapshot = restaurant_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise RestaurantNotFound(f"Restaurant {restaurant_ref.id} does not exist.")

    transaction.update(
        restaurant_ref, rating_aggregate_update(snapshot.to_dict(), review.rating)
    )
    transaction.set(
        rating_ref, {**review.to_document(), "timestamp": SERVER_TIMESTAMP}
    )


class FirestoreDbClient:
    """Cloud Firestore implementation, built on a firebase_admin Firestore client."""

    def __init__(self, client):
        self._client = client

    def _restaurants(self):
        return self._client.collection(RESTAURANTS_COLLECTION)

    def _ratings_query(self, restaurant_id: str):
        return (
            self._restaurants()
            .document(restaurant_id)
            .collection(RATINGS_COLLECTION)
            .order_by("timestamp", direction=DESCENDING)
        )

    def get_restaurants(
        self, filters: RestaurantFilters | None = None
    ) -> list[Restaurant]:
        query = apply_query_filters(self._restaurants(), filters)
        try:
            return [
                restaurant_from_document(doc.id, doc.to_dict())
                for doc in query.stream()
            ]
        except exceptions.GoogleAPIError as e:
            logger.error(f"Failed to list restaurants: {e}")
            return []

    def get_restaurant_by_id(self, restaurant_id: str) -> Optional[Restaurant]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid ID received: {restaurant_id!r}")
            return None
        try:
            snapshot = self._restaurants().document(restaurant_id).get()
        except exceptions.GoogleAPIError as e:
            logger.error(f"Failed to load restaurant {restaurant_id}: {e}")
            return None
        if not snapshot.exists:
            return None
        return restaurant_from_document(snapshot.id, snapshot.to_dict())

    def get_reviews_by_restaurant_id(self, restaurant_id: str) -> list[Rating]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid restaurantId received: {restaurant_id!r}")
            return []
        try:
            return [
                rating_from_document(doc.id, doc.to_dict())
                for doc in self._ratings_query(restaurant_id).stream()
            ]
        except exceptions.GoogleAPIError as e:
            logger.error(f"Failed to load reviews for {restaurant_id}: {e}")
            return []

    def add_review_to_restaurant(
        self, restaurant_id: str, review: ReviewInput
    ) -> None:
        _validate_review(restaurant_id, review)

        restaurant_ref = self._restaurants().document(restaurant_id)
        rating_ref = restaurant_ref.collection(RATINGS_COLLECTION).document()
        transaction = self._client.transaction()
        try:
            firestore.transactional(_update_with_rating)(
                transaction, restaurant_ref, rating_ref, review
            )
        except RestaurantNotFound as e:
            logger.error(f"There was an error adding the rating to the restaurant: {e}")
            raise
        except (exceptions.GoogleAPIError, ValueError) as e:
            # ValueError is raised once the transaction runs out of attempts.
            logger.error(f"There was an error adding the rating to the restaurant: {e}")
            raise BackendUnavailable(str(e)) from e

    def update_restaurant_image_reference(
        self, restaurant_id: str, public_image_url: str
    ) -> None:
        try:
            self._restaurants().document(restaurant_id).update(
                {"photo": public_image_url}
            )
        except exceptions.NotFound as e:
            raise RestaurantNotFound(
                f"Restaurant {restaurant_id} does not exist."
            ) from e
        except exceptions.GoogleAPIError as e:
            raise BackendUnavailable(str(e)) from e

    def add_restaurant(
        self, restaurant_data: dict, ratings_data: list[dict] | None = None
    ) -> str:
        try:
            _, doc_ref = self._restaurants().add(restaurant_data)
            for rating_data in ratings_data or []:
                doc_ref.collection(RATINGS_COLLECTION).add(rating_data)
        except exceptions.GoogleAPIError as e:
            raise BackendUnavailable(str(e)) from e
        return doc_ref.id

    def subscribe_restaurants(
        self, callback: SnapshotCallback, filters: RestaurantFilters | None = None
    ) -> Optional[Subscription]:
        if not _is_callable(callback):
            return None
        query = apply_query_filters(self._restaurants(), filters)

        def on_snapshot(docs, changes, read_time):
            callback([restaurant_from_document(doc.id, doc.to_dict()) for doc in docs])

        watch = query.on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)

    def subscribe_restaurant(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid ID received: {restaurant_id!r}")
            return None
        if not _is_callable(callback):
            return None

        def on_snapshot(docs, changes, read_time):
            snapshot = docs[0] if docs else None
            if snapshot is None or not snapshot.exists:
                callback(None)
                return
            callback(restaurant_from_document(snapshot.id, snapshot.to_dict()))

        watch = self._restaurants().document(restaurant_id).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)

    def subscribe_reviews(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid restaurantId received: {restaurant_id!r}")
            return None
        if not _is_callable(callback):
            return None

        def on_snapshot(docs, changes, read_time):
            callback([rating_from_document(doc.id, doc.to_dict()) for doc in docs])

        watch = self._ratings_query(restaurant_id).on_snapshot(on_snapshot)
        return Subscription(watch.unsubscribe)


class InMemoryQuery:
    """
    Immutable query over the in-memory restaurants collection.

    Mirrors the subset of the Firestore query API used by `apply_query_filters`.
    Documents missing an ordered field are excluded, as in Firestore.
    """

    def __init__(self, db: "InMemoryDbClient", filters=(), orders=()):
        self._db = db
        self.filters: tuple[FieldFilter, ...] = tuple(filters)
        self.orders: tuple[tuple[str, str], ...] = tuple(orders)

    def where(self, *, filter: FieldFilter) -> "InMemoryQuery":
        if filter.op_string != "==":
            raise InvalidArgument(f"Unsupported operator: {filter.op_string}")
        return InMemoryQuery(self._db, self.filters + (filter,), self.orders)

    def order_by(self, field_path: str, direction: str = ASCENDING) -> "InMemoryQuery":
        return InMemoryQuery(
            self._db, self.filters, self.orders + ((field_path, direction),)
        )

    def _matches(self, data: dict) -> bool:
        return all(data.get(f.field_path) == f.value for f in self.filters)

    def stream(self) -> list[tuple[str, dict]]:
        with self._db._lock:
            docs = [
                (doc_id, dict(data))
                for doc_id, data in self._db.restaurants.items()
                if self._matches(data)
            ]
        for field_path, _ in self.orders:
            docs = [doc for doc in docs if doc[1].get(field_path) is not None]
        # Apply the last ordering first so earlier ones take precedence.
        for field_path, direction in reversed(self.orders):
            docs.sort(key=lambda doc: doc[1][field_path], reverse=direction == DESCENDING)
        return docs


_UNSET = object()


@dataclass
class _Listener:
    resolve: Callable[[], Any]
    callback: SnapshotCallback
    last: Any = _UNSET


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.restaurants: Dict[str, dict] = {}
        self.ratings: Dict[str, Dict[str, dict]] = {}
        self._listeners: list[_Listener] = []
        self._lock = threading.RLock()
        self._last_timestamp: datetime | None = None

    def reset(self) -> None:
        """Clear all stored data and listeners (useful in tests)."""
        with self._lock:
            self.restaurants.clear()
            self.ratings.clear()
            self._listeners.clear()
            self._last_timestamp = None

    def restaurants_query(self) -> InMemoryQuery:
        return InMemoryQuery(self)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _now(self) -> datetime:
        # Strictly increasing so newest-first ordering is deterministic.
        now = datetime.now(timezone.utc)
        if self._last_timestamp and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def get_restaurants(
        self, filters: RestaurantFilters | None = None
    ) -> list[Restaurant]:
        query = apply_query_filters(self.restaurants_query(), filters)
        return [restaurant_from_document(doc_id, data) for doc_id, data in query.stream()]

    def get_restaurant_by_id(self, restaurant_id: str) -> Optional[Restaurant]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid ID received: {restaurant_id!r}")
            return None
        with self._lock:
            data = self.restaurants.get(restaurant_id)
            if data is None:
                return None
            return restaurant_from_document(restaurant_id, dict(data))

    def get_reviews_by_restaurant_id(self, restaurant_id: str) -> list[Rating]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid restaurantId received: {restaurant_id!r}")
            return []
        with self._lock:
            docs = list(self.ratings.get(restaurant_id, {}).items())
        docs.sort(
            key=lambda doc: doc[1].get("timestamp")
            or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return [rating_from_document(doc_id, data) for doc_id, data in docs]

    def add_review_to_restaurant(
        self, restaurant_id: str, review: ReviewInput
    ) -> None:
        _validate_review(restaurant_id, review)
        try:
            with self._lock:
                data = self.restaurants.get(restaurant_id)
                if data is None:
                    raise RestaurantNotFound(
                        f"Restaurant {restaurant_id} does not exist."
                    )
                # Stage both writes, then apply them together.
                updated = {**data, **rating_aggregate_update(data, review.rating)}
                rating_doc = {**review.to_document(), "timestamp": self._now()}
                self.restaurants[restaurant_id] = updated
                self.ratings.setdefault(restaurant_id, {})[uuid.uuid4().hex] = rating_doc
        except RestaurantError as e:
            logger.error(f"There was an error adding the rating to the restaurant: {e}")
            raise
        self._notify()

    def update_restaurant_image_reference(
        self, restaurant_id: str, public_image_url: str
    ) -> None:
        with self._lock:
            data = self.restaurants.get(restaurant_id)
            if data is None:
                raise RestaurantNotFound(f"Restaurant {restaurant_id} does not exist.")
            self.restaurants[restaurant_id] = {**data, "photo": public_image_url}
        self._notify()

    def add_restaurant(
        self, restaurant_data: dict, ratings_data: list[dict] | None = None
    ) -> str:
        restaurant_id = uuid.uuid4().hex
        with self._lock:
            self.restaurants[restaurant_id] = dict(restaurant_data)
            self.ratings[restaurant_id] = {
                uuid.uuid4().hex: dict(rating) for rating in ratings_data or []
            }
        self._notify()
        return restaurant_id

    def _subscribe(self, resolve: Callable[[], Any], callback: SnapshotCallback) -> Subscription:
        listener = _Listener(resolve=resolve, callback=callback)
        with self._lock:
            self._listeners.append(listener)
        self._deliver(listener)

        def release():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return Subscription(release)

    def _deliver(self, listener: _Listener) -> None:
        with self._lock:
            results = listener.resolve()
            if results == listener.last:
                return
            listener.last = results
        try:
            listener.callback(results)
        except Exception:
            logger.exception("Snapshot listener raised an error")

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(listener)

    def subscribe_restaurants(
        self, callback: SnapshotCallback, filters: RestaurantFilters | None = None
    ) -> Optional[Subscription]:
        if not _is_callable(callback):
            return None
        return self._subscribe(lambda: self.get_restaurants(filters), callback)

    def subscribe_restaurant(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid ID received: {restaurant_id!r}")
            return None
        if not _is_callable(callback):
            return None
        return self._subscribe(
            lambda: self.get_restaurant_by_id(restaurant_id), callback
        )

    def subscribe_reviews(
        self, restaurant_id: str, callback: SnapshotCallback
    ) -> Optional[Subscription]:
        if not restaurant_id:
            logger.warning(f"Error: Invalid restaurantId received: {restaurant_id!r}")
            return None
        if not _is_callable(callback):
            return None
        return self._subscribe(
            lambda: self.get_reviews_by_restaurant_id(restaurant_id), callback
        )
