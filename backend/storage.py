"""
Object storage for restaurant images: Firebase Storage, S3-compatible buckets
(Tencent COS) and an in-memory test double.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config
from firebase_admin import storage as firebase_storage

FIREBASE_DOWNLOAD_URL = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}"


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        self.stored_objects[path] = bytes(data)

    def public_url(self, path: str) -> str:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        return f"{self.base_url}/{quote(path)}"

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored


@dataclass
class FirebaseStorageClient:
    """
    Firebase Storage bucket accessed through firebase_admin.

    Uploads carry a download token so the returned URL works like the one the
    Firebase client SDK hands out.
    """

    bucket_name: str | None = None

    def __post_init__(self):
        self._bucket = firebase_storage.bucket(self.bucket_name)
        self._tokens: dict[str, str] = {}

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        token = uuid.uuid4().hex
        blob = self._bucket.blob(path)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        blob.upload_from_string(
            data, content_type=content_type or "application/octet-stream"
        )
        self._tokens[path] = token

    def public_url(self, path: str) -> str:
        token = self._tokens.get(path)
        if token is None:
            blob = self._bucket.get_blob(path)
            if blob is None:
                raise FileNotFoundError(path)
            token = (blob.metadata or {}).get("firebaseStorageDownloadTokens", "")
        url = FIREBASE_DOWNLOAD_URL.format(
            bucket=self._bucket.name, path=quote(path, safe="")
        )
        return f"{url}?alt=media&token={token}"


@dataclass
class CosStorageClient:
    """
    S3-compatible storage client for Tencent COS.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
            ACL="public-read",
        )

    def public_url(self, path: str) -> str:
        endpoint = urlsplit(self.endpoint)
        scheme = endpoint.scheme or "https"
        host = endpoint.netloc or endpoint.path
        return f"{scheme}://{self.bucket}.{host}/{quote(path)}"
