# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dacite import Config, from_dict

from shared.json_utils import convert_keys


def as_datetime(value: Any) -> Optional[datetime]:
    """Converts a stored timestamp into a plain timezone-aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return datetime.fromtimestamp(value.timestamp(), tz=value.tzinfo)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


@dataclass
class RestaurantFilters:
    """Listing filters, as read from the `category, city, price, sort` query params."""

    category: Optional[str] = None
    city: Optional[str] = None
    price: Optional[str] = None
    sort: Optional[str] = None


@dataclass
class Restaurant:
    id: str
    name: str = ""
    category: str = ""
    city: str = ""
    price: int = 0
    avg_rating: float = 0.0
    num_ratings: int = 0
    sum_rating: float = 0.0
    photo: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class Rating:
    id: str
    rating: float = 0.0
    text: str = ""
    user_id: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class ReviewInput:
    """A review as submitted by a user, before it is stored as a Rating."""

    rating: float
    text: str
    user_id: str

    def to_document(self) -> dict:
        return {
            "rating": float(self.rating),
            "text": self.text,
            "userId": self.user_id,
        }


@dataclass
class SessionUser:
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None
    token: Optional[str] = None


def _record_data(doc_id: str, data: dict | None) -> dict:
    record = convert_keys(dict(data or {}), "camel_to_snake")
    record["id"] = doc_id
    record["timestamp"] = as_datetime(record.get("timestamp"))
    return record


def restaurant_from_document(doc_id: str, data: dict | None) -> Restaurant:
    """Maps a stored restaurant document (camelCase fields) to a Restaurant."""
    return from_dict(
        data_class=Restaurant,
        data=_record_data(doc_id, data),
        config=Config(check_types=False),
    )


def rating_from_document(doc_id: str, data: dict | None) -> Rating:
    """Maps a stored rating document (camelCase fields) to a Rating."""
    return from_dict(
        data_class=Rating,
        data=_record_data(doc_id, data),
        config=Config(check_types=False),
    )
