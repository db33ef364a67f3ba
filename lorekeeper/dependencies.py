"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from lorekeeper.articles import ArticleStore
from lorekeeper.categories import CategoryStore
from lorekeeper.config import get_settings
from lorekeeper.decks import DeckStore
from lorekeeper.storage import BlobStore, InMemoryBlobStore, S3BlobStore

_blob_store: BlobStore | None = None
_article_store: ArticleStore | None = None
_category_store: CategoryStore | None = None
_deck_store: DeckStore | None = None


def get_blob_store() -> BlobStore:
    """
    Return a singleton blob store so in-memory state persists across requests.
    """
    global _blob_store
    if _blob_store:
        return _blob_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket_name:
        _blob_store = InMemoryBlobStore()
    else:
        _blob_store = S3BlobStore(
            bucket=settings.s3_bucket_name,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            public_base_url=settings.public_base_url,
        )
    return _blob_store


def get_article_store() -> ArticleStore:
    global _article_store
    if _article_store:
        return _article_store

    settings = get_settings()
    _article_store = ArticleStore(
        get_blob_store(),
        bcrypt_rounds=settings.bcrypt_rounds,
        min_secret_length=settings.min_secret_length,
        max_workers=settings.max_workers,
        conditional_writes=settings.use_conditional_writes,
    )
    return _article_store


def get_category_store() -> CategoryStore:
    global _category_store
    if _category_store:
        return _category_store

    _category_store = CategoryStore(
        get_blob_store(), max_workers=get_settings().max_workers
    )
    return _category_store


def get_deck_store() -> DeckStore:
    global _deck_store
    if _deck_store:
        return _deck_store

    _deck_store = DeckStore(get_blob_store(), max_workers=get_settings().max_workers)
    return _deck_store
