from __future__ import annotations

import hashlib
import secrets
from uuid import uuid4


def new_id() -> str:
    return str(uuid4())


def new_drop_token() -> str:
    """Public drop token (128 bits, url-safe)."""
    return secrets.token_urlsafe(16)


def new_invite_secret() -> str:
    """
    Raw invite secret (192 bits). Handed out once inside the signup URL;
    only digest() of it is ever stored.
    """
    return secrets.token_urlsafe(24)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
