"""
HTTP routes for the FriendlyEats backend.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.responses import StreamingResponse

from backend.auth import (
    AuthSession,
    IdentityProvider,
    ResponseCookieStore,
    SessionCookieBridge,
)
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import (
    get_current_user,
    get_db_client,
    get_identity_provider,
    get_storage_client,
    require_user,
)
from backend.images import UploadedImage, update_restaurant_image
from backend.live import SSE_HEADERS, SnapshotStream, event_stream
from backend.sample_data import add_sample_restaurants_and_reviews
from backend.schemas import (
    ImageUploadResponse,
    ListingsPage,
    RestaurantPage,
    ReviewSummaryResponse,
    SampleDataResponse,
    SessionResponse,
    SignInRequest,
    SubmitReviewResponse,
)
from backend.storage import StorageClient
from backend.summaries import summarize_reviews
from backend import views
from shared.constants import MAX_RATING, MAX_REVIEW_TEXT_LENGTH, MIN_RATING
from shared.types import RestaurantFilters, ReviewInput, SessionUser

logger = logging.getLogger(__name__)

router = APIRouter()


def _listing_filters(
    category: str | None = Query(None),
    city: str | None = Query(None),
    price: str | None = Query(None),
    sort: str | None = Query(None),
) -> RestaurantFilters:
    return RestaurantFilters(category=category, city=city, price=price, sort=sort)


def _get_restaurant_or_404(db: DbClient, restaurant_id: str):
    restaurant = db.get_restaurant_by_id(restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


def _live_payload(name: str, snapshot: Any) -> Any:
    if snapshot is None:
        return None
    if name == "reviews":
        return [views.review_view(r) for r in snapshot]
    if name == "restaurants":
        return [views.restaurant_view(r) for r in snapshot]
    return views.restaurant_view(snapshot)


@router.get("/restaurants", response_model=ListingsPage)
def list_restaurants(
    filters: RestaurantFilters = Depends(_listing_filters),
    db: DbClient = Depends(get_db_client),
    user: Optional[SessionUser] = Depends(get_current_user),
):
    """Listing page: restaurants matching the query params, plus the header."""
    restaurants = db.get_restaurants(filters)
    return views.listings_page(restaurants, filters, user)


@router.get("/restaurants/events")
async def stream_restaurants(
    request: Request,
    filters: RestaurantFilters = Depends(_listing_filters),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """Stream listing snapshots as Server-Sent Events."""
    stream = SnapshotStream(
        {"restaurants": partial(_subscribe_restaurants, db, filters)}
    )
    return StreamingResponse(
        event_stream(request, stream, settings.live_keepalive_seconds, _live_payload),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def _subscribe_restaurants(db: DbClient, filters: RestaurantFilters, callback):
    return db.subscribe_restaurants(callback, filters)


@router.post("/restaurants/sample", response_model=SampleDataResponse, status_code=201)
def add_sample_restaurants(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
    user: SessionUser = Depends(require_user),
):
    logger.info(f"Adding sample restaurants for {user.uid}")
    restaurant_ids = add_sample_restaurants_and_reviews(
        db, settings.sample_restaurant_count
    )
    return SampleDataResponse(restaurant_ids=restaurant_ids)


@router.get("/restaurants/{restaurant_id}", response_model=RestaurantPage)
def get_restaurant(
    restaurant_id: str,
    db: DbClient = Depends(get_db_client),
    user: Optional[SessionUser] = Depends(get_current_user),
):
    """Detail page: the restaurant, its reviews newest first, and the review dialog state."""
    restaurant = _get_restaurant_or_404(db, restaurant_id)
    reviews = db.get_reviews_by_restaurant_id(restaurant_id)
    return views.restaurant_page(restaurant, reviews, user)


@router.get("/restaurants/{restaurant_id}/events")
async def stream_restaurant(
    restaurant_id: str,
    request: Request,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """Stream the restaurant and its reviews as Server-Sent Events."""
    _get_restaurant_or_404(db, restaurant_id)
    stream = SnapshotStream(
        {
            "restaurant": partial(db.subscribe_restaurant, restaurant_id),
            "reviews": partial(db.subscribe_reviews, restaurant_id),
        }
    )
    return StreamingResponse(
        event_stream(request, stream, settings.live_keepalive_seconds, _live_payload),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/restaurants/{restaurant_id}/summary", response_model=ReviewSummaryResponse)
def get_review_summary(
    restaurant_id: str,
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    reviews = db.get_reviews_by_restaurant_id(restaurant_id)
    summary = summarize_reviews(
        reviews, api_key=settings.gemini_api_key, model=settings.gemini_model
    )
    return views.summary_view(restaurant_id, summary)


@router.post(
    "/restaurants/{restaurant_id}/reviews",
    response_model=SubmitReviewResponse,
    status_code=201,
)
def submit_review(
    restaurant_id: str,
    rating: float = Form(..., ge=MIN_RATING, le=MAX_RATING),
    text: str = Form(..., min_length=1, max_length=MAX_REVIEW_TEXT_LENGTH),
    db: DbClient = Depends(get_db_client),
    user: SessionUser = Depends(require_user),
):
    """Review form submission; the review is attributed to the signed-in user."""
    review = ReviewInput(rating=rating, text=text, user_id=user.uid)
    db.add_review_to_restaurant(restaurant_id, review)
    restaurant = _get_restaurant_or_404(db, restaurant_id)
    return SubmitReviewResponse(status="ok", restaurant=views.restaurant_view(restaurant))


@router.post("/restaurants/{restaurant_id}/image", response_model=ImageUploadResponse)
async def upload_restaurant_image(
    restaurant_id: str,
    file: UploadFile = File(...),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    user: SessionUser = Depends(require_user),
):
    image = UploadedImage(
        name=file.filename or "",
        content=await file.read(),
        content_type=file.content_type,
    )
    url = update_restaurant_image(db, storage, restaurant_id, image)
    return ImageUploadResponse(restaurant_id=restaurant_id, url=url)


@router.get("/session", response_model=SessionResponse)
def get_session(user: Optional[SessionUser] = Depends(get_current_user)):
    return SessionResponse(header=views.header_view(user))


@router.post("/session", response_model=SessionResponse)
def sign_in(
    payload: SignInRequest,
    response: Response,
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
    user: Optional[SessionUser] = Depends(get_current_user),
):
    """Verify the ID token and mirror it into the session cookie."""
    auth_session = AuthSession(provider, current_user=user)
    bridge = SessionCookieBridge(
        ResponseCookieStore(response, secure=settings.session_cookie_secure),
        initial_user=user,
        cookie_name=settings.session_cookie_name,
    )
    subscription = auth_session.on_id_token_changed(bridge)
    try:
        signed_in = auth_session.sign_in(payload.id_token)
    finally:
        subscription.unsubscribe()
    return SessionResponse(
        header=views.header_view(signed_in), refresh_required=bridge.refresh_required
    )


@router.delete("/session", response_model=SessionResponse)
def sign_out(
    response: Response,
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
    user: Optional[SessionUser] = Depends(get_current_user),
):
    auth_session = AuthSession(provider, current_user=user)
    bridge = SessionCookieBridge(
        ResponseCookieStore(response, secure=settings.session_cookie_secure),
        initial_user=user,
        cookie_name=settings.session_cookie_name,
    )
    subscription = auth_session.on_id_token_changed(bridge)
    try:
        auth_session.sign_out()
    finally:
        subscription.unsubscribe()
    return SessionResponse(
        header=views.header_view(None), refresh_required=bridge.refresh_required
    )
