"""
Storage abstraction for Backblaze B2 (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

import boto3
from botocore.config import Config

# S3 DeleteObjects accepts at most this many keys per call.
DELETE_BATCH_SIZE = 1000


@dataclass(frozen=True)
class StorageObject:
    key: str
    size: int
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        ...

    def list_objects(self, prefix: str) -> list[StorageObject]:
        ...

    def delete_object(self, key: str) -> None:
        ...

    def delete_objects(self, keys: Iterable[str]) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.stored_objects[key] = data
        self.content_types[key] = content_type

    def list_objects(self, prefix: str) -> list[StorageObject]:
        return [
            StorageObject(
                key=key,
                size=len(data),
                last_modified=datetime.now(timezone.utc),
                storage_class="STANDARD",
            )
            for key, data in sorted(self.stored_objects.items())
            if key.startswith(prefix)
        ]

    def delete_object(self, key: str) -> None:
        self.stored_objects.pop(key, None)
        self.content_types.pop(key, None)

    def delete_objects(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.delete_object(key)


@dataclass
class B2StorageClient:
    """
    S3-compatible storage client for Backblaze B2.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        # B2 expects path-style addressing.
        config = Config(
            s3={"addressing_style": "path"},
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

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )

    def list_objects(self, prefix: str) -> list[StorageObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects: list[StorageObject] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                objects.append(
                    StorageObject(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        last_modified=item.get("LastModified"),
                        storage_class=item.get("StorageClass"),
                    )
                )
        return objects

    def delete_object(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)

    def delete_objects(self, keys: Iterable[str]) -> None:
        pending = list(keys)
        for start in range(0, len(pending), DELETE_BATCH_SIZE):
            batch = pending[start : start + DELETE_BATCH_SIZE]
            self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
