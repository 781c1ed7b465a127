from __future__ import annotations

from enum import Enum


class Failure(str, Enum):
    """
    Caller-visible failure reasons.

    Values are API-stable strings. A consume failure never says *why* the
    link is dead; credential failures never say which half was wrong.
    """

    LINK_INVALID_OR_EXPIRED = "Link invalid or expired"
    UNAUTHORIZED = "Unauthorized"
    INVALID_OR_USED_INVITE = "Invalid or used invite"
    INVALID_CREDENTIALS = "Invalid credentials"
    ALREADY_BOOTSTRAPPED = "Already bootstrapped"
    EMAIL_UNAVAILABLE = "Email unavailable"
    FORBIDDEN = "Forbidden"


class StoreUnavailable(RuntimeError):
    """
    The durable store failed (connection lost, lock timeout, disk error...).

    Raised from database.transaction() after the rollback. The core never
    retries; the transport decides whether and how to.
    """
