"""
Presentation: turns restaurant, review and session records into the view
payloads the frontend renders.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Iterable, Optional

from backend.schemas import (
    FiltersModel,
    HeaderView,
    ListingsPage,
    RestaurantModel,
    RestaurantPage,
    ReviewDialogState,
    ReviewModel,
    ReviewSummaryResponse,
)
from backend.summaries import ReviewSummary
from shared.constants import DEFAULT_PROFILE_IMAGE, SUMMARY_ATTRIBUTION
from shared.types import Rating, Restaurant, RestaurantFilters, SessionUser


def price_label(price: int) -> str:
    return "$" * max(int(price or 0), 0)


def restaurant_view(restaurant: Restaurant) -> RestaurantModel:
    return RestaurantModel(**asdict(restaurant), price_label=price_label(restaurant.price))


def review_view(review: Rating) -> ReviewModel:
    return ReviewModel(**asdict(review))


def header_view(user: Optional[SessionUser]) -> HeaderView:
    if user is None:
        return HeaderView(signed_in=False, photo_url=DEFAULT_PROFILE_IMAGE)
    return HeaderView(
        signed_in=True,
        uid=user.uid,
        display_name=user.display_name,
        email=user.email,
        photo_url=user.photo_url or DEFAULT_PROFILE_IMAGE,
    )


def listings_page(
    restaurants: Iterable[Restaurant],
    filters: RestaurantFilters,
    user: Optional[SessionUser],
) -> ListingsPage:
    return ListingsPage(
        header=header_view(user),
        filters=FiltersModel(**asdict(filters)),
        restaurants=[restaurant_view(r) for r in restaurants],
    )


def restaurant_page(
    restaurant: Restaurant,
    reviews: Iterable[Rating],
    user: Optional[SessionUser],
) -> RestaurantPage:
    """The review dialog is only offered to signed-in users."""
    user_id = user.uid if user else None
    dialog = (
        ReviewDialogState(restaurant_id=restaurant.id, user_id=user_id)
        if user_id
        else None
    )
    return RestaurantPage(
        header=header_view(user),
        restaurant=restaurant_view(restaurant),
        reviews=[review_view(r) for r in reviews],
        user_id=user_id,
        review_dialog=dialog,
    )


def summary_view(restaurant_id: str, summary: ReviewSummary) -> ReviewSummaryResponse:
    return ReviewSummaryResponse(
        restaurant_id=restaurant_id,
        text=summary.text,
        ok=summary.ok,
        attribution=SUMMARY_ATTRIBUTION if summary.ok else None,
    )
