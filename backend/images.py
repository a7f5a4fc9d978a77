"""
Restaurant image updates: upload to object storage, then point the
restaurant's `photo` field at the uploaded file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError
from google.api_core import exceptions

from backend.db import DbClient
from backend.errors import BackendUnavailable, InvalidArgument, RestaurantError
from backend.storage import StorageClient
from shared.firebase_constants import IMAGES_STORAGE_PREFIX

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (exceptions.GoogleAPIError, BotoCoreError, ClientError, OSError)


@dataclass
class UploadedImage:
    name: str
    content: bytes
    content_type: Optional[str] = None


def image_storage_path(restaurant_id: str, file_name: str) -> str:
    return f"{IMAGES_STORAGE_PREFIX}/{restaurant_id}/{file_name}"


def upload_image(
    storage: StorageClient, restaurant_id: str, image: UploadedImage
) -> str:
    """Uploads the image under the restaurant's namespace and returns its public URL."""
    path = image_storage_path(restaurant_id, image.name)
    storage.upload_bytes(path, image.content, content_type=image.content_type)
    return storage.public_url(path)


def update_restaurant_image(
    db: DbClient,
    storage: StorageClient,
    restaurant_id: str,
    image: UploadedImage | None,
) -> str:
    """
    Uploads a new restaurant image and stores its URL on the restaurant.

    The upload is not rolled back when the document update fails.

    Returns:
        str: The public URL of the uploaded image.

    Raises:
        InvalidArgument: The restaurant id or the image (or its name) is missing.
        RestaurantNotFound: The restaurant does not exist.
        BackendUnavailable: Storage or database call failed.
    """
    if not restaurant_id:
        raise InvalidArgument("No restaurant ID has been provided.")
    if not image or not image.name:
        raise InvalidArgument("A valid image has not been provided.")

    try:
        public_image_url = upload_image(storage, restaurant_id, image)
        db.update_restaurant_image_reference(restaurant_id, public_image_url)
    except RestaurantError as e:
        logger.error(f"Error processing request: {e}")
        raise
    except STORAGE_ERRORS as e:
        logger.error(f"Error processing request: {e}")
        raise BackendUnavailable(f"Image upload failed: {e}") from e

    logger.info(f"Updated image for restaurant {restaurant_id}: {public_image_url}")
    return public_image_url
