"""
Password-gated, versioned article documents.

Each article lives at ``{title}.json`` in the bucket root. Mutations re-read
the stored envelope and verify the caller's secret against its bcrypt hash.
There is no locking between the read and the write: two concurrent creates of
the same title can both pass the existence check, and the later write wins.
With ``conditional_writes`` enabled the create uses the backend's
"only if absent" put, which closes that gap where the backend supports it.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from lorekeeper import credentials
from lorekeeper.codec import (
    JSON_CONTENT_TYPE,
    CodecError,
    Envelope,
    LegacyContent,
    StoredDocument,
    decode_document,
    encode_envelope,
)
from lorekeeper.errors import (
    BadRequestError,
    ConflictError,
    CorruptRecordError,
    ForbiddenError,
    NeedsMigrationError,
    NotFoundError,
    backend_errors,
)
from lorekeeper.storage import BlobAlreadyExists, BlobNotFound, BlobStore, KeyListing

logger = logging.getLogger(__name__)

ARTICLE_SUFFIX = ".json"


def _utc_now() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass
class ArticleSummary:
    id: str
    content: Any


def article_key(article_id: str) -> str:
    if not article_id or not article_id.strip():
        raise BadRequestError("Article title is required")
    if "/" in article_id:
        raise BadRequestError("Article title must not contain '/'")
    return f"{article_id}{ARTICLE_SUFFIX}"


def is_article_key(key: str) -> bool:
    return key.endswith(ARTICLE_SUFFIX) and "/" not in key and key != ARTICLE_SUFFIX


class ArticleStore:
    def __init__(
        self,
        blob_store: BlobStore,
        *,
        bcrypt_rounds: int = 12,
        min_secret_length: int = 4,
        max_workers: int = 8,
        conditional_writes: bool = False,
        clock: Callable[[], str] = _utc_now,
    ):
        self.blob_store = blob_store
        self.bcrypt_rounds = bcrypt_rounds
        self.min_secret_length = min_secret_length
        self.max_workers = max_workers
        self.conditional_writes = conditional_writes
        self.clock = clock

    def create(self, title: str, content: Any, secret: Optional[str]) -> Envelope:
        key = article_key(title)
        if secret is None or len(str(secret).strip()) < self.min_secret_length:
            raise BadRequestError(
                f"A valid password is required (min. {self.min_secret_length} characters)"
            )
        _require_object(content)

        with backend_errors(logger, f"creating article {title!r}"):
            if self.blob_store.head(key):
                raise ConflictError(f"Article {title!r} already exists")

            envelope = Envelope(
                content=content,
                credential_hash=credentials.hash_secret(str(secret), self.bcrypt_rounds),
                version=1,
            )
            try:
                self.blob_store.put(
                    key,
                    encode_envelope(envelope),
                    JSON_CONTENT_TYPE,
                    if_absent=self.conditional_writes,
                )
            except BlobAlreadyExists:
                raise ConflictError(f"Article {title!r} already exists") from None

        logger.info("Created article %s", key)
        return envelope

    def read(self, article_id: str) -> Any:
        """Return the article content; the credential hash is never included."""
        return self._load(article_id).content

    def update(
        self, article_id: str, secret: Optional[str], new_content: Any = None
    ) -> Envelope:
        """
        Replace the content (when given) and bump the version by one.

        Raises:
            NotFoundError: no article at this id.
            NeedsMigrationError: the article has no credential hash.
            ForbiddenError: the secret does not match.
            CorruptRecordError: the stored version cannot be read.
        """
        if new_content is not None:
            _require_object(new_content)
        current = self._authorize(article_id, secret)
        if not current.version_readable:
            logger.error("Article %s has an unreadable version; refusing update", article_id)
            raise CorruptRecordError(f"Article {article_id!r} has an invalid version")

        updated = Envelope(
            content=current.content if new_content is None else new_content,
            credential_hash=current.credential_hash,
            version=current.version + 1,
            updated_at=self.clock(),
            extra=current.extra,
        )
        with backend_errors(logger, f"updating article {article_id!r}"):
            self.blob_store.put(
                article_key(article_id), encode_envelope(updated), JSON_CONTENT_TYPE
            )
        logger.info("Updated article %s to version %d", article_id, updated.version)
        return updated

    def delete(self, article_id: str, secret: Optional[str]) -> None:
        self._authorize(article_id, secret)
        with backend_errors(logger, f"deleting article {article_id!r}"):
            self.blob_store.delete(article_key(article_id))
        logger.info("Deleted article %s", article_id)

    def list(self) -> list[ArticleSummary]:
        with backend_errors(logger, "listing articles"):
            keys = [key for key in KeyListing(self.blob_store) if is_article_key(key)]
            if not keys:
                return []
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                fetched = list(executor.map(self._fetch_for_listing, keys))
        return [summary for summary in fetched if summary is not None]

    def _fetch_for_listing(self, key: str) -> Optional[ArticleSummary]:
        try:
            data = self.blob_store.get(key)
        except BlobNotFound:
            # Deleted between enumeration and fetch.
            return None
        article_id = key[: -len(ARTICLE_SUFFIX)]
        return ArticleSummary(id=article_id, content=self._decode(article_id, data).content)

    def _load(self, article_id: str) -> StoredDocument:
        key = article_key(article_id)
        with backend_errors(logger, f"reading article {article_id!r}"):
            try:
                data = self.blob_store.get(key)
            except BlobNotFound:
                raise NotFoundError(f"Article {article_id!r} not found") from None
        return self._decode(article_id, data)

    def _decode(self, article_id: str, data: bytes) -> StoredDocument:
        try:
            return decode_document(data)
        except CodecError as exc:
            logger.error("Article %s is not a readable document: %s", article_id, exc)
            raise CorruptRecordError(f"Article {article_id!r} is corrupt") from exc

    def _authorize(self, article_id: str, secret: Optional[str]) -> Envelope:
        if secret is None or str(secret) == "":
            raise BadRequestError("Password is required")
        document = self._load(article_id)
        if isinstance(document, LegacyContent) or document.credential_hash is None:
            raise NeedsMigrationError(
                f"Article {article_id!r} was created without a password; migrate it first"
            )
        if not credentials.verify_secret(str(secret), document.credential_hash):
            logger.warning("Rejected password for article %s", article_id)
            raise ForbiddenError("Invalid password")
        return document


def _require_object(content: Any) -> None:
    if not isinstance(content, dict):
        raise BadRequestError("Article content must be a JSON object")
