"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

import firebase_admin
from fastapi import Depends, HTTPException, Request
from firebase_admin import firestore

from backend.auth import (
    FirebaseIdentityProvider,
    IdentityProvider,
    InMemoryIdentityProvider,
    get_authenticated_user,
)
from backend.config import Settings, get_settings
from backend.db import DbClient, FirestoreDbClient, InMemoryDbClient
from backend.storage import (
    CosStorageClient,
    FirebaseStorageClient,
    InMemoryStorageClient,
    StorageClient,
)
from shared.types import SessionUser

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_identity_provider: IdentityProvider | None = None


def _use_in_memory(settings: Settings) -> bool:
    return settings.use_in_memory_backends or not settings.firebase_project_id


def get_firebase_app(settings: Settings | None = None) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        settings = settings or get_settings()
        options = {"projectId": settings.firebase_project_id}
        if settings.firebase_storage_bucket:
            options["storageBucket"] = settings.firebase_storage_bucket
        return firebase_admin.initialize_app(options=options)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so listeners and in-memory state persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if _use_in_memory(settings):
        _db_client = InMemoryDbClient()
    else:
        _db_client = FirestoreDbClient(firestore.client(get_firebase_app(settings)))
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    elif settings.firebase_project_id and settings.firebase_storage_bucket:
        get_firebase_app(settings)
        _storage_client = FirebaseStorageClient(settings.firebase_storage_bucket)
    elif settings.cos_bucket:
        _storage_client = CosStorageClient(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    else:
        _storage_client = InMemoryStorageClient()
    return _storage_client


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    settings = get_settings()
    if _use_in_memory(settings):
        _identity_provider = InMemoryIdentityProvider()
    else:
        _identity_provider = FirebaseIdentityProvider(get_firebase_app(settings))
    return _identity_provider


def get_current_user(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
    settings: Settings = Depends(get_settings),
) -> Optional[SessionUser]:
    """The signed-in user rebuilt from the session cookie, or None."""
    return get_authenticated_user(request, provider, settings.session_cookie_name)


def require_user(
    user: Optional[SessionUser] = Depends(get_current_user),
) -> SessionUser:
    """Raise 401 if no user is signed in."""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
