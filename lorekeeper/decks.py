"""
Card image assets grouped into decks.

A card is stored at ``{deck_title}/{card_name}.svg`` or ``.png``. A deck has
no record of its own; it is whatever card keys share the leading path segment.
"""

from __future__ import annotations

import base64
import binascii
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional, Sequence

from lorekeeper.errors import BackendError, BadRequestError, NotFoundError, backend_errors
from lorekeeper.storage import (
    MAX_DELETE_BATCH,
    BlobStore,
    BlobStoreError,
    KeyListing,
    PartialBatchDelete,
    chunked,
)

logger = logging.getLogger(__name__)

SVG_MIME_TYPE = "image/svg+xml"
PNG_MIME_TYPE = "image/png"
CARD_EXTENSIONS = {".svg": SVG_MIME_TYPE, ".png": PNG_MIME_TYPE}


def is_card_key(key: str) -> bool:
    return key.lower().endswith(tuple(CARD_EXTENSIONS))


def split_card_key(key: str) -> Optional[tuple[str, str]]:
    """Split at the first ``/`` into (deck title, file name); None if malformed."""
    title, sep, file_name = key.partition("/")
    if not sep or not title or not file_name:
        return None
    return title, file_name


def card_name(file_name: str) -> str:
    lowered = file_name.lower()
    for ext in CARD_EXTENSIONS:
        if lowered.endswith(ext):
            return file_name[: -len(ext)]
    return file_name


@dataclass
class CardLink:
    name: str
    url: str


@dataclass
class Deck:
    title: str
    cards: list[CardLink] = field(default_factory=list)


@dataclass
class CardUpload:
    name: Optional[str]
    svg_base64: Optional[str] = None
    png_base64: Optional[str] = None


@dataclass
class _PreparedCard:
    key: str
    data: bytes
    mime_type: str


def _validate_title(title: Optional[str]) -> str:
    if not title or not title.strip():
        raise BadRequestError("Deck title is required")
    if "/" in title:
        raise BadRequestError("Deck title must not contain '/'")
    return title


def _decode_image(encoded: str, idx: int) -> bytes:
    cleaned = "".join(encoded.split())
    # Clients may omit the trailing "=" padding.
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        raise BadRequestError(f"Invalid base64 image at index {idx}") from None


class DeckStore:
    def __init__(
        self,
        blob_store: BlobStore,
        *,
        max_workers: int = 8,
        batch_size: int = MAX_DELETE_BATCH,
    ):
        self.blob_store = blob_store
        self.max_workers = max_workers
        self.batch_size = min(batch_size, MAX_DELETE_BATCH)

    def list_all_decks(self) -> list[Deck]:
        """Group every card key in the bucket by deck, in first-seen order."""
        decks: dict[str, Deck] = {}
        with backend_errors(logger, "listing decks"):
            for key in KeyListing(self.blob_store):
                if not is_card_key(key):
                    continue
                parts = split_card_key(key)
                if parts is None:
                    logger.debug("Skipping card key without deck: %s", key)
                    continue
                title, file_name = parts
                deck = decks.setdefault(title, Deck(title=title))
                deck.cards.append(
                    CardLink(name=card_name(file_name), url=self.blob_store.public_url(key))
                )
        return list(decks.values())

    def list_deck(self, title: str) -> list[str]:
        prefix = f"{_validate_title(title)}/"
        with backend_errors(logger, f"listing deck {title!r}"):
            return self._card_keys(prefix)

    def upload_deck(self, title: str, cards: Sequence[CardUpload]) -> list[str]:
        """
        Write every card of ``cards`` under ``title/``, overwriting same-named cards.

        All entries are validated before anything is written. Writes then run
        concurrently; if one fails, cards already written stay written and the
        raised ``BackendError`` reports how many landed.
        """
        _validate_title(title)
        if cards is None:
            raise BadRequestError("A list of cards is required")
        prepared = [self._prepare(title, card, idx) for idx, card in enumerate(cards)]
        if not prepared:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self.blob_store.put, card.key, card.data, card.mime_type)
                for card in prepared
            ]
            wait(futures)

        failures = [f.exception() for f in futures if f.exception() is not None]
        completed = len(futures) - len(failures)
        for exc in failures:
            if not isinstance(exc, BlobStoreError):
                raise exc
            logger.error("Card upload to deck %s failed: %s", title, exc)
        if failures:
            logger.error(
                "Deck %s upload incomplete: %d of %d cards written",
                title,
                completed,
                len(prepared),
            )
            raise BackendError(
                "Error uploading cards", completed=completed, attempted=len(prepared)
            )

        logger.info("Uploaded %d cards to deck %s", len(prepared), title)
        return [card.key for card in prepared]

    def delete_deck(self, title: str) -> int:
        prefix = f"{_validate_title(title)}/"
        with backend_errors(logger, f"listing deck {title!r} for deletion"):
            keys = self._card_keys(prefix)
        if not keys:
            raise NotFoundError(f"No cards found for deck {title!r}")
        deleted = self._delete_keys(keys)
        logger.info("Deleted deck %s (%d cards)", title, deleted)
        return deleted

    def delete_all_decks(self) -> int:
        with backend_errors(logger, "listing all cards for deletion"):
            keys = self._card_keys("")
        if not keys:
            raise NotFoundError("No cards to delete")
        deleted = self._delete_keys(keys)
        logger.info("Deleted %d cards across all decks", deleted)
        return deleted

    def _card_keys(self, prefix: str) -> list[str]:
        return [key for key in KeyListing(self.blob_store, prefix) if is_card_key(key)]

    def _delete_keys(self, keys: Sequence[str]) -> int:
        batches = chunked(keys, self.batch_size)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.blob_store.delete_batch, b) for b in batches]
            wait(futures)

        deleted = 0
        failed = False
        for future in futures:
            exc = future.exception()
            if exc is None:
                deleted += future.result()
            elif isinstance(exc, PartialBatchDelete):
                logger.error("Batch delete partially failed: %s", exc)
                deleted += exc.deleted
                failed = True
            elif isinstance(exc, BlobStoreError):
                logger.error("Batch delete failed: %s", exc)
                failed = True
            else:
                raise exc
        if failed:
            raise BackendError(
                "Error deleting cards", completed=deleted, attempted=len(keys)
            )
        return deleted

    def _prepare(self, title: str, card: CardUpload, idx: int) -> _PreparedCard:
        if not card.name:
            raise BadRequestError(f"Missing name or image at index {idx}")
        if "/" in card.name:
            raise BadRequestError(f"Card name must not contain '/' (index {idx})")
        if card.svg_base64 and card.png_base64:
            raise BadRequestError(
                f"Only one of svgBase64 or pngBase64 may be given (index {idx})"
            )
        if card.png_base64:
            return _PreparedCard(
                key=f"{title}/{card.name}.png",
                data=_decode_image(card.png_base64, idx),
                mime_type=PNG_MIME_TYPE,
            )
        if card.svg_base64:
            return _PreparedCard(
                key=f"{title}/{card.name}.svg",
                data=_decode_image(card.svg_base64, idx),
                mime_type=SVG_MIME_TYPE,
            )
        raise BadRequestError(f"Missing name or image at index {idx}")
