"""
Per-document secrets, hashed with bcrypt.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


def _secret_bytes(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_secret(secret: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(_secret_bytes(secret), bcrypt.gensalt(rounds=rounds)).decode(
        "ascii"
    )


def verify_secret(secret: str, credential_hash: str) -> bool:
    """Return True when ``secret`` matches ``credential_hash``.

    A malformed hash never matches.
    """
    try:
        return bcrypt.checkpw(_secret_bytes(secret), credential_hash.encode("ascii"))
    except ValueError:
        return False
