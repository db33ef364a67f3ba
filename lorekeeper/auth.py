"""
Shared bearer-token check applied to every API route.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from lorekeeper.config import Settings, get_settings

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


def require_bearer_token(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.bearer_token
    if not expected:
        # No token configured (local development).
        return
    token = authorization or ""
    if token.startswith(_BEARER_PREFIX):
        token = token[len(_BEARER_PREFIX) :]
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Rejected request with invalid bearer token")
        raise HTTPException(status_code=401, detail="Unauthorized")
