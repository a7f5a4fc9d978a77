"""
Pydantic schemas for the FastAPI backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class RestaurantModel(BaseModel):
    id: str
    name: str
    category: str
    city: str
    price: int
    price_label: str
    avg_rating: float
    num_ratings: int
    sum_rating: float
    photo: str
    timestamp: Optional[datetime] = None


class ReviewModel(BaseModel):
    id: str
    rating: float
    text: str
    user_id: str
    timestamp: Optional[datetime] = None


class HeaderView(BaseModel):
    signed_in: bool
    uid: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: str


class FiltersModel(BaseModel):
    category: Optional[str] = None
    city: Optional[str] = None
    price: Optional[str] = None
    sort: Optional[str] = None


class ListingsPage(BaseModel):
    header: HeaderView
    filters: FiltersModel
    restaurants: list[RestaurantModel]


class ReviewDialogState(BaseModel):
    restaurant_id: str
    user_id: str
    rating: float = 0
    text: str = ""


class RestaurantPage(BaseModel):
    header: HeaderView
    restaurant: RestaurantModel
    reviews: list[ReviewModel]
    user_id: Optional[str] = None
    review_dialog: Optional[ReviewDialogState] = None


class ReviewSummaryResponse(BaseModel):
    restaurant_id: str
    text: str
    ok: bool
    attribution: Optional[str] = None


class SignInRequest(BaseModel):
    id_token: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    header: HeaderView
    refresh_required: bool = False


class SubmitReviewResponse(BaseModel):
    status: Literal["ok"]
    restaurant: RestaurantModel


class ImageUploadResponse(BaseModel):
    restaurant_id: str
    url: str


class SampleDataResponse(BaseModel):
    restaurant_ids: list[str]
