"""
Blob store abstraction for S3-compatible object storage and in-memory testing.

Stores only ever talk to a ``BlobStore``; whether it is backed by a bucket or
a dict is irrelevant to them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterator, Optional, Protocol, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most this many keys per request.
MAX_DELETE_BATCH = 1000

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_PRECONDITION_CODES = {"PreconditionFailed", "ConditionalRequestConflict", "412"}


class BlobStoreError(Exception):
    """Any failure of the underlying object store."""


class BlobNotFound(BlobStoreError):
    """The requested key does not exist."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key


class BlobAlreadyExists(BlobStoreError):
    """A conditional "only if absent" write found an existing object."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key


class PartialBatchDelete(BlobStoreError):
    """A batch delete removed only some of its keys."""

    def __init__(self, message: str, deleted: int):
        super().__init__(message)
        self.deleted = deleted


@dataclass
class ListPage:
    keys: list[str]
    next_token: Optional[str] = None


class BlobStore(Protocol):
    """Defines the operations the stores need from object storage."""

    def list_page(
        self, prefix: str = "", continuation_token: Optional[str] = None
    ) -> ListPage:
        ...

    def get(self, key: str) -> bytes:
        ...

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        if_absent: bool = False,
    ) -> None:
        ...

    def head(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...

    def delete_batch(self, keys: Sequence[str]) -> int:
        ...

    def public_url(self, key: str) -> str:
        ...


class KeyListing:
    """
    Lazy, restartable sequence of every key under ``prefix``.

    Each iteration starts from the first page and follows continuation
    tokens until the backend stops returning one.
    """

    def __init__(self, store: BlobStore, prefix: str = ""):
        self.store = store
        self.prefix = prefix

    def __iter__(self) -> Iterator[str]:
        token: Optional[str] = None
        seen: set[str] = set()
        while True:
            page = self.store.list_page(self.prefix, token)
            yield from page.keys
            if not page.next_token:
                return
            token = page.next_token
            if token in seen:
                raise BlobStoreError(
                    f"continuation token {token!r} repeated while listing {self.prefix!r}"
                )
            seen.add(token)


def chunked(keys: Sequence[str], size: int = MAX_DELETE_BATCH) -> list[list[str]]:
    """Split ``keys`` into consecutive batches of at most ``size`` keys."""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(keys[i : i + size]) for i in range(0, len(keys), size)]


@dataclass
class StoredObject:
    data: bytes
    content_type: str


@dataclass
class InMemoryBlobStore:
    """Test double for blob store interactions."""

    base_url: str = "https://example.test/storage"
    page_size: int = 1000
    objects: dict[str, StoredObject] = field(default_factory=dict)
    batch_calls: list[list[str]] = field(default_factory=list)

    def __post_init__(self):
        self._lock = threading.Lock()

    def list_page(
        self, prefix: str = "", continuation_token: Optional[str] = None
    ) -> ListPage:
        with self._lock:
            keys = sorted(k for k in self.objects if k.startswith(prefix))
        start = int(continuation_token) if continuation_token else 0
        end = start + self.page_size
        next_token = str(end) if end < len(keys) else None
        return ListPage(keys=keys[start:end], next_token=next_token)

    def get(self, key: str) -> bytes:
        with self._lock:
            stored = self.objects.get(key)
        if stored is None:
            raise BlobNotFound(key)
        return stored.data

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        if_absent: bool = False,
    ) -> None:
        with self._lock:
            if if_absent and key in self.objects:
                raise BlobAlreadyExists(key)
            self.objects[key] = StoredObject(bytes(data), content_type)

    def head(self, key: str) -> bool:
        with self._lock:
            return key in self.objects

    def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)

    def delete_batch(self, keys: Sequence[str]) -> int:
        if len(keys) > MAX_DELETE_BATCH:
            raise BlobStoreError(
                f"batch of {len(keys)} keys exceeds limit of {MAX_DELETE_BATCH}"
            )
        with self._lock:
            self.batch_calls.append(list(keys))
            for key in keys:
                self.objects.pop(key, None)
        return len(keys)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.objects.clear()
            self.batch_calls.clear()


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3BlobStore:
    """
    S3-compatible blob store backed by a boto3 client.
    """

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                region_name=region,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(signature_version="s3v4", retries={"mode": "standard"}),
            )
        self._client = client
        logger.info("S3 blob store: bucket=%s endpoint=%s", bucket, endpoint_url or "aws")

    def list_page(
        self, prefix: str = "", continuation_token: Optional[str] = None
    ) -> ListPage:
        params = {"Bucket": self.bucket, "Prefix": prefix}
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        try:
            response = self._client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"list {prefix!r} failed: {exc}") from exc
        keys = [obj["Key"] for obj in response.get("Contents", [])]
        next_token = (
            response.get("NextContinuationToken")
            if response.get("IsTruncated")
            else None
        )
        return ListPage(keys=keys, next_token=next_token)

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise BlobNotFound(key) from exc
            raise BlobStoreError(f"get {key!r} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"get {key!r} failed: {exc}") from exc

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        if_absent: bool = False,
    ) -> None:
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if if_absent:
            params["IfNoneMatch"] = "*"
        try:
            self._client.put_object(**params)
        except ClientError as exc:
            if if_absent and _error_code(exc) in _PRECONDITION_CODES:
                raise BlobAlreadyExists(key) from exc
            raise BlobStoreError(f"put {key!r} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"put {key!r} failed: {exc}") from exc

    def head(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise BlobStoreError(f"head {key!r} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"head {key!r} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"delete {key!r} failed: {exc}") from exc

    def delete_batch(self, keys: Sequence[str]) -> int:
        if len(keys) > MAX_DELETE_BATCH:
            raise BlobStoreError(
                f"batch of {len(keys)} keys exceeds limit of {MAX_DELETE_BATCH}"
            )
        if not keys:
            return 0
        try:
            response = self._client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"batch delete of {len(keys)} keys failed: {exc}") from exc
        # Quiet mode only reports the keys that could not be deleted.
        errors = response.get("Errors", [])
        if errors:
            failed = ", ".join(e.get("Key", "?") for e in errors[:5])
            raise PartialBatchDelete(
                f"batch delete failed for {len(errors)} of {len(keys)} keys ({failed})",
                deleted=len(keys) - len(errors),
            )
        return len(keys)

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        region = self.region or self._client.meta.region_name
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"
