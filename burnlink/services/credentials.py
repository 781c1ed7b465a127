from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, EmailStr, Field as PydField, field_validator
from sqlalchemy import delete, insert, literal, update
from sqlalchemy import select as sa_select
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..caller import Caller
from ..clock import Clock, system_clock
from ..config import settings
from ..database import transaction
from ..errors import Failure
from ..models.invite import Invite
from ..models.user import User, UserRole
from ..models.user_session import UserSession
from ..passwords import burn_verification, hash_password, verify_password
from ..tokens import digest, new_id, new_invite_secret, new_session_id

logger = logging.getLogger(__name__)


# -------------------------
# Schemas
# -------------------------

class BootstrapRequest(BaseModel):
    display_name: str = PydField(..., min_length=1)


class InviteCreate(BaseModel):
    expires_minutes: int = PydField(default_factory=lambda: settings.invite_default_minutes, ge=1)

    @field_validator("expires_minutes")
    @classmethod
    def _cap(cls, v: int) -> int:
        if v > settings.invite_max_minutes:
            raise ValueError(f"expires_minutes must be <= {settings.invite_max_minutes}")
        return v


class SignupRequest(BaseModel):
    """
    Redeem an invite. The raw token comes from the signup URL.
    """

    token: str = PydField(..., min_length=1)
    display_name: str = PydField(..., min_length=1)
    email: Optional[EmailStr] = None
    password: str

    @field_validator("email")
    @classmethod
    def _norm_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else None

    @field_validator("password")
    @classmethod
    def _min_length(cls, v: str) -> str:
        if len(v) < settings.password_min_length:
            raise ValueError(f"Password must be at least {settings.password_min_length} characters")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = PydField(..., min_length=1)

    @field_validator("email")
    @classmethod
    def _norm_email(cls, v: str) -> str:
        return v.strip().lower()


# -------------------------
# Results
# -------------------------

@dataclass(frozen=True)
class SessionGrant:
    """
    The credential artifact handed to the transport (it decides the cookie).
    An empty sid means "discard whatever you hold".
    """

    sid: str
    expires_at: datetime

    @property
    def cleared(self) -> bool:
        return not self.sid


CLEARED_GRANT = SessionGrant(sid="", expires_at=datetime(1970, 1, 1))


@dataclass(frozen=True)
class AuthResult:
    ok: bool
    error: Optional[Failure] = None
    grant: Optional[SessionGrant] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class InviteResult:
    ok: bool
    error: Optional[Failure] = None
    url: Optional[str] = None
    expires_at: Optional[datetime] = None


def _fail(reason: Failure) -> AuthResult:
    return AuthResult(ok=False, error=reason)


# -------------------------
# Helpers
# -------------------------

def _add_session(session: Session, user_id: str, now: datetime) -> SessionGrant:
    """
    Stage a new session row in the caller's transaction.
    """
    sid = new_session_id()
    expires_at = now + timedelta(days=settings.session_ttl_days)
    session.add(UserSession(id=sid, user_id=user_id, created_at=now, expires_at=expires_at))
    return SessionGrant(sid=sid, expires_at=expires_at)


def _insert_owner(session: Session, user_id: str, display_name: str, now: datetime, *, only_if_empty: bool) -> int:
    """
    INSERT the owner row, optionally only while the users table is empty.

    The emptiness test lives inside the INSERT ... SELECT, and the partial
    unique index on role='owner' rejects a second owner even when two
    inserts race past it.
    """
    users = User.__table__
    row = sa_select(
        literal(user_id),
        literal(display_name),
        literal(UserRole.OWNER.value),
        literal(now),
    )
    if only_if_empty:
        row = row.where(~sa_select(users.c.id).exists())

    stmt = insert(users).from_select(["id", "display_name", "role", "created_at"], row)
    return session.exec(stmt).rowcount


def signup_url(raw_token: str) -> str:
    return f"{settings.public_base_url}{settings.signup_path}?token={raw_token}"


# -------------------------
# Operations
# -------------------------

def bootstrap_owner(
    session: Session,
    payload: BootstrapRequest,
    *,
    clock: Clock = system_clock,
) -> AuthResult:
    """
    Create the first (owner) account plus a session for it.
    Only succeeds against an empty users table.
    """
    now = clock.now()
    uid = new_id()

    try:
        with transaction(session):
            if _insert_owner(session, uid, payload.display_name, now, only_if_empty=True) != 1:
                return _fail(Failure.ALREADY_BOOTSTRAPPED)
            grant = _add_session(session, uid, now)
    except IntegrityError:
        return _fail(Failure.ALREADY_BOOTSTRAPPED)

    logger.info("Owner bootstrapped id=%s", uid)
    return AuthResult(ok=True, grant=grant, user_id=uid)


def create_invite(
    session: Session,
    payload: InviteCreate,
    caller: Optional[Caller],
    *,
    clock: Clock = system_clock,
) -> InviteResult:
    """
    Issue a single-use signup invite (owner/admin only).

    Only the digest of the secret is stored; the URL carrying the raw
    secret is returned exactly once.
    """
    if caller is None or not caller.is_privileged:
        return InviteResult(ok=False, error=Failure.UNAUTHORIZED)

    now = clock.now()
    raw = new_invite_secret()
    inv = Invite(
        token_hash=digest(raw),
        created_by=caller.id,
        created_at=now,
        expires_at=now + timedelta(minutes=payload.expires_minutes),
        max_uses=1,
    )

    with transaction(session):
        session.add(inv)

    logger.info("Invite issued id=%s by=%s minutes=%d", inv.id, caller.id, payload.expires_minutes)
    return InviteResult(ok=True, url=signup_url(raw), expires_at=inv.expires_at)


def consume_invite(
    session: Session,
    payload: SignupRequest,
    *,
    clock: Clock = system_clock,
) -> AuthResult:
    """
    Redeem an invite: mark it used, create the user, open a session.

    The mark-used step is a conditional UPDATE re-stating "unused and not
    expired", so of two racing redemptions only one matches. All three
    writes commit together or not at all.
    """
    now = clock.now()
    uid = new_id()
    # hash outside the transaction so the invite row is not held during bcrypt
    password_hash = hash_password(payload.password)

    mark_used = (
        update(Invite)
        .where(
            Invite.token_hash == digest(payload.token),
            Invite.used_at.is_(None),
            Invite.expires_at > now,
        )
        .values(used_by=uid, used_at=now)
        .execution_options(synchronize_session=False)
    )

    try:
        with transaction(session):
            if session.exec(mark_used).rowcount != 1:
                return _fail(Failure.INVALID_OR_USED_INVITE)

            session.add(
                User(
                    id=uid,
                    email=payload.email,
                    display_name=payload.display_name,
                    role=UserRole.USER.value,
                    password_hash=password_hash,
                    created_at=now,
                )
            )
            session.flush()
            grant = _add_session(session, uid, now)
    except IntegrityError:
        # only users.email can collide here; the invite mark was rolled back with it
        return _fail(Failure.EMAIL_UNAVAILABLE)

    logger.info("Invite redeemed, user created id=%s", uid)
    return AuthResult(ok=True, grant=grant, user_id=uid)


def login_with_password(
    session: Session,
    payload: LoginRequest,
    *,
    clock: Clock = system_clock,
) -> AuthResult:
    user = session.exec(select(User).where(User.email == payload.email)).first()

    if user is None:
        burn_verification(payload.password)
        logger.info("Login failed")
        return _fail(Failure.INVALID_CREDENTIALS)

    if not verify_password(payload.password, user.password_hash):
        logger.info("Login failed")
        return _fail(Failure.INVALID_CREDENTIALS)

    now = clock.now()
    user_id = user.id
    with transaction(session):
        grant = _add_session(session, user_id, now)

    return AuthResult(ok=True, grant=grant, user_id=user_id)


def dev_login(
    session: Session,
    username: str,
    password: str,
    *,
    clock: Clock = system_clock,
) -> AuthResult:
    """
    Local-development shortcut: sign in as the owner with the DEV_ADMIN_*
    credentials, creating a "Dev Owner" if no owner exists yet.
    Refused outright in production.
    """
    if settings.is_prod:
        return _fail(Failure.FORBIDDEN)

    expected_user = settings.dev_admin_user
    expected_pass = settings.dev_admin_pass
    if not expected_user or not expected_pass:
        return _fail(Failure.INVALID_CREDENTIALS)

    user_ok = hmac.compare_digest(username.encode("utf-8"), expected_user.encode("utf-8"))
    pass_ok = hmac.compare_digest(password.encode("utf-8"), expected_pass.encode("utf-8"))
    if not (user_ok and pass_ok):
        return _fail(Failure.INVALID_CREDENTIALS)

    now = clock.now()
    owner = session.exec(select(User).where(User.role == UserRole.OWNER.value)).first()
    if owner is None:
        uid = new_id()
        try:
            with transaction(session):
                _insert_owner(session, uid, "Dev Owner", now, only_if_empty=False)
        except IntegrityError:
            # someone else created the owner in the meantime
            pass
        owner = session.exec(select(User).where(User.role == UserRole.OWNER.value)).first()

    owner_id = owner.id
    with transaction(session):
        grant = _add_session(session, owner_id, now)

    logger.info("Dev login as owner id=%s", owner_id)
    return AuthResult(ok=True, grant=grant, user_id=owner_id)


def logout(session: Session, sid: Optional[str]) -> AuthResult:
    """
    Delete the session if it exists. Always ok; the grant tells the
    transport to drop the credential either way.
    """
    if sid:
        with transaction(session):
            session.exec(delete(UserSession).where(UserSession.id == sid).execution_options(synchronize_session=False))
    return AuthResult(ok=True, grant=CLEARED_GRANT)


def resolve_session(
    session: Session,
    sid: Optional[str],
    *,
    clock: Clock = system_clock,
) -> Optional[Caller]:
    """
    Caller for a session id, or None. Unknown, expired and orphaned
    sessions all look the same.
    """
    if not sid:
        return None

    now = clock.now()
    q = (
        select(User)
        .join(UserSession, UserSession.user_id == User.id)
        .where(UserSession.id == sid, UserSession.expires_at > now)
        .limit(1)
    )
    user = session.exec(q).first()
    if user is None:
        return None
    return Caller(id=user.id, role=user.role, display_name=user.display_name)
