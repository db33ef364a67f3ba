"""
Flat category records stored at ``categories/{id}.json``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass

from lorekeeper.codec import JSON_CONTENT_TYPE, CodecError, decode_json, encode_json
from lorekeeper.errors import (
    BadRequestError,
    CorruptRecordError,
    NotFoundError,
    backend_errors,
)
from lorekeeper.storage import BlobNotFound, BlobStore, KeyListing

logger = logging.getLogger(__name__)

CATEGORY_PREFIX = "categories/"
CATEGORY_SUFFIX = ".json"


@dataclass
class Category:
    id: str
    name: str

    def as_dict(self) -> dict:
        return asdict(self)


def category_key(category_id: str) -> str:
    if not category_id or "/" in category_id:
        raise BadRequestError("Category id is required and must not contain '/'")
    return f"{CATEGORY_PREFIX}{category_id}{CATEGORY_SUFFIX}"


class CategoryStore:
    def __init__(self, blob_store: BlobStore, *, max_workers: int = 8):
        self.blob_store = blob_store
        self.max_workers = max_workers

    def create(self, category_id: str, name: str) -> Category:
        """Create or overwrite; there is no conflict detection for categories."""
        if not category_id or not name:
            raise BadRequestError("Category id and name are required")
        category = Category(id=category_id, name=name)
        with backend_errors(logger, f"creating category {category_id!r}"):
            self.blob_store.put(
                category_key(category_id),
                encode_json(category.as_dict()),
                JSON_CONTENT_TYPE,
            )
        logger.info("Saved category %s", category_id)
        return category

    def get(self, category_id: str) -> Category:
        key = category_key(category_id)
        with backend_errors(logger, f"reading category {category_id!r}"):
            try:
                data = self.blob_store.get(key)
            except BlobNotFound:
                raise NotFoundError(f"Category {category_id!r} not found") from None
        return self._decode(key, data)

    def delete(self, category_id: str) -> None:
        key = category_key(category_id)
        with backend_errors(logger, f"deleting category {category_id!r}"):
            if not self.blob_store.head(key):
                raise NotFoundError(f"Category {category_id!r} not found")
            self.blob_store.delete(key)
        logger.info("Deleted category %s", category_id)

    def list(self) -> list[Category]:
        with backend_errors(logger, "listing categories"):
            keys = [
                key
                for key in KeyListing(self.blob_store, CATEGORY_PREFIX)
                if key.endswith(CATEGORY_SUFFIX)
            ]
            if not keys:
                return []
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                fetched = list(executor.map(self._fetch, keys))
        return [category for category in fetched if category is not None]

    def _fetch(self, key: str) -> Category | None:
        try:
            data = self.blob_store.get(key)
        except BlobNotFound:
            return None
        return self._decode(key, data)

    def _decode(self, key: str, data: bytes) -> Category:
        # The id always comes from the key; the stored body must carry a name.
        category_id = key[len(CATEGORY_PREFIX) : -len(CATEGORY_SUFFIX)]
        try:
            record = decode_json(data)
        except CodecError as exc:
            logger.error("Category %s is not valid JSON: %s", key, exc)
            raise CorruptRecordError(f"Category {category_id!r} is corrupt") from exc
        if not isinstance(record, dict) or not isinstance(record.get("name"), str):
            logger.error("Category %s has unexpected structure: %r", key, record)
            raise CorruptRecordError(f"Category {category_id!r} is corrupt")
        return Category(id=category_id, name=record["name"])
