"""
Blob storage for PDF drawings: S3-compatible buckets and an in-memory double.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import quote, unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from takeoff_backend.errors import StorageError

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


class StorageClient(Protocol):
    """Defines the operations the workflow needs from object storage."""

    def put(self, data: bytes, content_type: str, filename: str) -> str:
        ...

    def delete(self, url: str) -> None:
        ...

    def get_bytes(self, url: str) -> bytes:
        ...


def build_object_key(filename: str) -> str:
    """Return a unique ``pdfs/`` key that keeps a readable trace of the filename."""
    safe_name = _UNSAFE_KEY_CHARS.sub("-", filename.strip()).strip("-.") or "drawing.pdf"
    millis = int(time.time() * 1000)
    return f"pdfs/{millis}-{uuid.uuid4().hex[:8]}-{safe_name}"


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def _key_for_url(self, url: str) -> str:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise StorageError(f"Not a locator for this store: {url}")
        return url[len(prefix):]

    def put(self, data: bytes, content_type: str, filename: str) -> str:
        key = build_object_key(filename)
        self.stored_objects[key] = bytes(data)
        self.content_types[key] = content_type
        return f"{self.base_url}/{key}"

    def delete(self, url: str) -> None:
        key = self._key_for_url(url)
        self.stored_objects.pop(key, None)
        self.content_types.pop(key, None)

    def get_bytes(self, url: str) -> bytes:
        stored = self.stored_objects.get(self._key_for_url(url))
        if stored is None:
            raise StorageError(f"Object not found: {url}")
        return stored

    def reset(self) -> None:
        """Clear all stored objects (useful in tests)."""
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client.

    Objects are addressed by URL: virtual-hosted AWS URLs when no endpoint is
    configured, path-style ``{endpoint}/{bucket}/{key}`` URLs otherwise.
    """

    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    max_attempts: int = 3

    def __post_init__(self):
        config = Config(
            signature_version="s3v4",
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"max_attempts": self.max_attempts, "mode": "standard"},
            s3={"addressing_style": "path" if self.endpoint else "virtual"},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def url_for_key(self, key: str) -> str:
        quoted = quote(key)
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{quoted}"
        if self.region and self.region != "us-east-1":
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"
        return f"https://{self.bucket}.s3.amazonaws.com/{quoted}"

    def key_for_url(self, url: str) -> str:
        path = unquote(urlparse(url).path).lstrip("/")
        if self.endpoint and path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1:]
        if not path:
            raise StorageError(f"Cannot derive object key from {url}")
        return path

    def put(self, data: bytes, content_type: str, filename: str) -> str:
        key = build_object_key(filename)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Upload of {filename} failed: {exc}") from exc
        return self.url_for_key(key)

    def delete(self, url: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self.key_for_url(url))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Delete of {url} failed: {exc}") from exc

    def get_bytes(self, url: str) -> bytes:
        try:
            response = self._client.get_object(
                Bucket=self.bucket, Key=self.key_for_url(url)
            )
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Download of {url} failed: {exc}") from exc
