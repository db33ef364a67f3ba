"""
Stored JSON formats for articles and categories.

An article object in the bucket is one of two shapes:

* ``Envelope``: ``{"article": {...}, "passwordHash": "...", "version": n,
  "updatedAt": "..."}``. ``passwordHash`` may be absent on documents written
  before credentials existed.
* ``LegacyContent``: any other JSON value, which is the article content itself.

``decode_document`` sniffs the shape once; callers branch on the returned type.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"

_CONTENT_FIELD = "article"
_HASH_FIELD = "passwordHash"
_VERSION_FIELD = "version"
_UPDATED_FIELD = "updatedAt"


class CodecError(ValueError):
    """Raised when stored bytes are not the JSON structure expected."""


@dataclass
class LegacyContent:
    raw: Any

    @property
    def content(self) -> Any:
        return self.raw

    @property
    def credential_hash(self) -> Optional[str]:
        return None

    @property
    def version(self) -> int:
        return 1


@dataclass
class Envelope:
    content: Any
    credential_hash: Optional[str] = None
    version: int = 1
    updated_at: Optional[str] = None
    # Unknown top-level fields found on read, written back untouched.
    extra: Optional[dict] = None
    # False when the stored version could not be read and 1 was assumed.
    version_readable: bool = True


StoredDocument = Union[LegacyContent, Envelope]


def decode_json(data: bytes) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CodecError(f"invalid JSON: {exc}") from exc


def encode_json(payload: Any) -> bytes:
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def decode_document(data: bytes) -> StoredDocument:
    parsed = decode_json(data)
    if not isinstance(parsed, dict) or not isinstance(parsed.get(_CONTENT_FIELD), dict):
        return LegacyContent(parsed)

    credential_hash = parsed.get(_HASH_FIELD)
    if not isinstance(credential_hash, str) or not credential_hash:
        credential_hash = None

    version = _read_version(parsed.get(_VERSION_FIELD, 1))

    known = {_CONTENT_FIELD, _HASH_FIELD, _VERSION_FIELD, _UPDATED_FIELD}
    extra = {k: v for k, v in parsed.items() if k not in known}
    return Envelope(
        content=parsed[_CONTENT_FIELD],
        credential_hash=credential_hash,
        version=version or 1,
        updated_at=parsed.get(_UPDATED_FIELD),
        extra=extra or None,
        version_readable=version is not None,
    )


def _read_version(value: Any) -> Optional[int]:
    """Return the stored version as a positive int, or None if unreadable.

    Int-like strings such as ``"2"`` are accepted.
    """
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        logger.warning("Unreadable document version %r; assuming 1", value)
        return None
    return value


def encode_envelope(envelope: Envelope) -> bytes:
    payload: dict[str, Any] = dict(envelope.extra or {})
    payload[_CONTENT_FIELD] = envelope.content
    if envelope.credential_hash is not None:
        payload[_HASH_FIELD] = envelope.credential_hash
    payload[_VERSION_FIELD] = envelope.version
    if envelope.updated_at is not None:
        payload[_UPDATED_FIELD] = envelope.updated_at
    return encode_json(payload)
