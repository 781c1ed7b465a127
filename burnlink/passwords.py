from __future__ import annotations

import base64
import hashlib
import logging
from functools import lru_cache
from typing import Optional

import bcrypt

from .config import settings

logger = logging.getLogger(__name__)


def _prepare(password: str) -> bytes:
    # bcrypt only looks at 72 bytes; pre-hash so long passphrases keep all their entropy
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    """Salted bcrypt digest of a password. The raw password is never stored."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_prepare(password), salt).decode("utf-8")


def verify_password(password: str, digest: Optional[str]) -> bool:
    """
    Constant-time check of `password` against a stored digest.
    A missing or malformed digest never verifies.
    """
    if not digest:
        return False
    try:
        return bcrypt.checkpw(_prepare(password), digest.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password digest is malformed")
        return False


@lru_cache(maxsize=1)
def _dummy_digest() -> str:
    return hash_password("burnlink-timing-equalizer")


def burn_verification(password: str) -> None:
    """
    Run a full verification against a throwaway digest.

    Used when the account does not exist so the failure path costs the same
    as a wrong password.
    """
    verify_password(password, _dummy_digest())
