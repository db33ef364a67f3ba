"""
Error taxonomy shared by the stores and rendered by the HTTP layer.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from lorekeeper.storage import BlobStoreError


class Status(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    NEEDS_MIGRATION = "needs_migration"
    BAD_REQUEST = "bad_request"
    INTERNAL_ERROR = "internal_error"


HTTP_STATUS_CODES = {
    Status.OK: 200,
    Status.NOT_FOUND: 404,
    Status.CONFLICT: 409,
    Status.FORBIDDEN: 403,
    Status.NEEDS_MIGRATION: 412,
    Status.BAD_REQUEST: 400,
    Status.INTERNAL_ERROR: 500,
}


class StoreError(Exception):
    """Base class for every failure a store reports to its caller."""

    status = Status.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"status": self.status.value, "error": self.message}


class NotFoundError(StoreError):
    status = Status.NOT_FOUND


class ConflictError(StoreError):
    status = Status.CONFLICT


class ForbiddenError(StoreError):
    status = Status.FORBIDDEN


class NeedsMigrationError(StoreError):
    """The document carries no credential hash, so authorship cannot be checked."""

    status = Status.NEEDS_MIGRATION


class BadRequestError(StoreError):
    status = Status.BAD_REQUEST


class BackendError(StoreError):
    """
    The blob store failed. The message is generic; details go to the log.

    ``completed`` and ``attempted`` are set for fan-out operations where some
    sub-operations may have taken effect before the failure.
    """

    status = Status.INTERNAL_ERROR

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        completed: Optional[int] = None,
        attempted: Optional[int] = None,
    ):
        super().__init__(message)
        self.completed = completed
        self.attempted = attempted

    def as_dict(self) -> dict:
        payload = super().as_dict()
        if self.attempted is not None:
            payload["completed"] = self.completed
            payload["attempted"] = self.attempted
        return payload


class CorruptRecordError(BackendError):
    """A stored object exists but cannot be decoded into the expected shape."""


@contextmanager
def backend_errors(logger: logging.Logger, action: str) -> Iterator[None]:
    """Translate blob store failures raised inside the block into ``BackendError``.

    The underlying exception is logged; the caller only sees a generic message.
    """
    try:
        yield
    except BlobStoreError:
        logger.exception("Storage backend failed while %s", action)
        raise BackendError() from None
