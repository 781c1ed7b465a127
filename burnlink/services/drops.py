from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AnyUrl, BaseModel, Field as PydField, TypeAdapter, ValidationError, model_validator
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..caller import Caller, is_privileged
from ..clock import Clock, system_clock
from ..config import settings
from ..database import transaction
from ..errors import Failure
from ..models.drop import Drop, DropKind, DropStatus
from ..models.view import View
from ..tokens import new_drop_token

logger = logging.getLogger(__name__)

TOKEN_ATTEMPTS = 5

_url_adapter = TypeAdapter(AnyUrl)


# -------------------------
# Schemas
# -------------------------

class DropCreate(BaseModel):
    """
    Input for create(). Building this model is the validation step, so bad
    input is rejected before the store is touched.
    """

    title: str = PydField(..., min_length=1)
    body: str = PydField(..., min_length=1)
    kind: DropKind = DropKind.TEXT
    ttl_ms: int = PydField(..., gt=0)
    max_views: int = PydField(..., ge=1)

    @model_validator(mode="after")
    def _check(self) -> "DropCreate":
        if not self.title.strip():
            raise ValueError("title must not be blank")
        if not self.body.strip():
            raise ValueError("body must not be blank")
        if self.max_views > settings.drop_max_views_cap:
            raise ValueError(f"max_views must be <= {settings.drop_max_views_cap}")
        if self.ttl_ms > settings.drop_max_ttl_ms:
            raise ValueError(f"ttl_ms must be <= {settings.drop_max_ttl_ms}")
        if self.kind == DropKind.URL:
            self.body = self.body.strip()
            if not is_absolute_url(self.body):
                raise ValueError("body must be an absolute URL for kind=url")
        return self


class DropSummary(BaseModel):
    """
    A drop as its creator / an admin sees it in listings.
    """

    id: str
    token: str
    owner_id: Optional[str] = None
    kind: str
    title: str
    body: str

    ttl_ms: int
    max_views: int
    used_views: int
    remaining_views: int

    created_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    first_viewed_at: Optional[datetime] = None
    last_viewed_at: Optional[datetime] = None
    exhausted_at: Optional[datetime] = None

    status: DropStatus


# -------------------------
# Content variants
# -------------------------

@dataclass(frozen=True)
class TextContent:
    body: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class UrlContent:
    url: str
    kind: Literal["url"] = "url"


DropContent = Union[TextContent, UrlContent]


def content_of(kind: str, body: str) -> DropContent:
    if kind == DropKind.URL.value:
        return UrlContent(url=body)
    return TextContent(body=body)


# -------------------------
# Results
# -------------------------

@dataclass(frozen=True)
class CreateResult:
    ok: bool
    id: str
    token: str
    url: str


@dataclass(frozen=True)
class RevokeResult:
    ok: bool
    error: Optional[Failure] = None


@dataclass(frozen=True)
class ConsumeResult:
    ok: bool
    error: Optional[Failure] = None
    title: Optional[str] = None
    content: Optional[DropContent] = None
    remaining: Optional[int] = None
    expires_in_ms: Optional[int] = None

    @property
    def kind(self) -> Optional[str]:
        return self.content.kind if self.content else None

    @property
    def body(self) -> Optional[str]:
        return self.content.body if isinstance(self.content, TextContent) else None

    @property
    def url(self) -> Optional[str]:
        return self.content.url if isinstance(self.content, UrlContent) else None

    def to_dict(self) -> Dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error.value if self.error else None}
        out: Dict[str, Any] = {
            "ok": True,
            "title": self.title,
            "kind": self.kind,
            "remaining": self.remaining,
            "expiresInMs": self.expires_in_ms,
        }
        if self.url is not None:
            out["url"] = self.url
        else:
            out["body"] = self.body
        return out


LINK_DEAD = ConsumeResult(ok=False, error=Failure.LINK_INVALID_OR_EXPIRED)


# -------------------------
# Helpers
# -------------------------

def is_absolute_url(raw: str) -> bool:
    try:
        parsed = _url_adapter.validate_python(raw)
    except ValidationError:
        return False
    return bool(parsed.scheme) and bool(parsed.host)


def public_path(token: str) -> str:
    return f"/d/{token}"


def derive_status(drop: Drop, now: datetime) -> DropStatus:
    """
    Revoked > Expired > Exhausted > Active.
    """
    if drop.revoked_at is not None:
        return DropStatus.REVOKED
    if drop.expires_at is not None and now >= drop.expires_at:
        return DropStatus.EXPIRED
    if drop.used_views >= drop.max_views:
        return DropStatus.EXHAUSTED
    return DropStatus.ACTIVE


def summarize(drop: Drop, now: datetime) -> DropSummary:
    return DropSummary(
        id=drop.id,
        token=drop.token,
        owner_id=drop.owner_id,
        kind=drop.kind,
        title=drop.title,
        body=drop.body,
        ttl_ms=drop.ttl_ms,
        max_views=drop.max_views,
        used_views=drop.used_views,
        remaining_views=max(0, drop.max_views - drop.used_views),
        created_at=drop.created_at,
        expires_at=drop.expires_at,
        revoked_at=drop.revoked_at,
        first_viewed_at=drop.first_viewed_at,
        last_viewed_at=drop.last_viewed_at,
        exhausted_at=drop.exhausted_at,
        status=derive_status(drop, now),
    )


def _status_clause(status: DropStatus, now: datetime):
    # same precedence as derive_status, phrased for drops_state_idx
    live = (Drop.revoked_at.is_(None), Drop.expires_at > now)
    if status == DropStatus.REVOKED:
        return (Drop.revoked_at.is_not(None),)
    if status == DropStatus.EXPIRED:
        return (Drop.revoked_at.is_(None), Drop.expires_at <= now)
    if status == DropStatus.EXHAUSTED:
        return live + (Drop.used_views >= Drop.max_views,)
    return live + (Drop.used_views < Drop.max_views,)


# -------------------------
# Operations
# -------------------------

def create(
    session: Session,
    payload: DropCreate,
    caller: Optional[Caller] = None,
    *,
    clock: Clock = system_clock,
) -> CreateResult:
    """
    Persist a new drop and return its public token.

    The token is unique in the store; on the (very unlikely) collision we
    draw a new one and try again.
    """
    now = clock.now()
    expires_at = now + timedelta(milliseconds=payload.ttl_ms)

    for attempt in range(1, TOKEN_ATTEMPTS + 1):
        drop = Drop(
            token=new_drop_token(),
            owner_id=caller.id if caller else None,
            kind=payload.kind.value,
            title=payload.title,
            body=payload.body,
            ttl_ms=payload.ttl_ms,
            max_views=payload.max_views,
            used_views=0,
            created_at=now,
            expires_at=expires_at,
        )
        try:
            with transaction(session):
                session.add(drop)
        except IntegrityError:
            logger.warning("Drop token collision (attempt %d/%d)", attempt, TOKEN_ATTEMPTS)
            continue

        logger.info("Drop created id=%s kind=%s max_views=%d ttl_ms=%d", drop.id, drop.kind, drop.max_views, drop.ttl_ms)
        return CreateResult(ok=True, id=drop.id, token=drop.token, url=public_path(drop.token))

    raise RuntimeError("could not allocate a unique drop token")


def list_drops(
    session: Session,
    caller: Optional[Caller],
    *,
    status: Optional[DropStatus] = None,
    limit: int = 200,
    clock: Clock = system_clock,
) -> List[DropSummary]:
    """
    Owners/admins see every drop, other signed-in users only their own,
    anonymous callers nothing. Newest first.
    """
    if caller is None:
        return []

    now = clock.now()
    q = select(Drop).order_by(Drop.created_at.desc())
    if not caller.is_privileged:
        q = q.where(Drop.owner_id == caller.id)
    if status is not None:
        q = q.where(*_status_clause(status, now))
    q = q.limit(limit)

    return [summarize(d, now) for d in session.exec(q).all()]


def revoke(
    session: Session,
    drop_id: str,
    caller: Optional[Caller],
    *,
    clock: Clock = system_clock,
) -> RevokeResult:
    """
    Close a drop for good. Idempotent: revoked_at is only written while null.

    Any signed-in caller may revoke any drop unless REVOKE_OWNER_ONLY is set,
    in which case non-admins only reach their own drops. The result is ok
    either way so it does not reveal whether the id exists.
    """
    if caller is None:
        return RevokeResult(ok=False, error=Failure.UNAUTHORIZED)

    now = clock.now()
    stmt = (
        update(Drop)
        .where(Drop.id == drop_id, Drop.revoked_at.is_(None))
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    if settings.revoke_owner_only and not is_privileged(caller):
        stmt = stmt.where(Drop.owner_id == caller.id)

    with transaction(session):
        res = session.exec(stmt)

    if res.rowcount:
        logger.info("Drop revoked id=%s by=%s", drop_id, caller.id)
    return RevokeResult(ok=True)


def consume(
    session: Session,
    token: str,
    *,
    ua: Optional[str] = None,
    ip: Optional[str] = None,
    clock: Clock = system_clock,
) -> ConsumeResult:
    """
    Spend one view of the drop behind `token`.

    The eligibility check and the increment are one conditional UPDATE, so
    the store serializes racing consumers on the row: with N views left,
    exactly N of any number of concurrent calls match the WHERE clause.
    The audit View row is inserted in the same transaction.

    Every failure (unknown token, revoked, expired, exhausted) comes back as
    the same LinkInvalidOrExpired outcome.
    """
    now = clock.now()

    stmt = (
        update(Drop)
        .where(
            Drop.token == token,
            Drop.revoked_at.is_(None),
            or_(Drop.expires_at.is_(None), Drop.expires_at > now),
            Drop.used_views < Drop.max_views,
        )
        .values(
            used_views=Drop.used_views + 1,
            first_viewed_at=func.coalesce(Drop.first_viewed_at, now),
            last_viewed_at=now,
            exhausted_at=case(
                (Drop.used_views + 1 >= Drop.max_views, func.coalesce(Drop.exhausted_at, now)),
                else_=Drop.exhausted_at,
            ),
        )
        .returning(
            Drop.id,
            Drop.title,
            Drop.body,
            Drop.kind,
            Drop.used_views,
            Drop.max_views,
            Drop.expires_at,
        )
        .execution_options(synchronize_session=False)
    )

    with transaction(session):
        row = session.exec(stmt).first()
        if row is None:
            logger.debug("Consume rejected")
            return LINK_DEAD

        session.add(View(drop_id=row.id, viewed_at=now, ua=ua or None, ip=ip or None))

    expires_in_ms = None
    if row.expires_at is not None:
        expires_in_ms = max(0, int((row.expires_at - now).total_seconds() * 1000))

    return ConsumeResult(
        ok=True,
        title=row.title,
        content=content_of(row.kind, row.body),
        remaining=int(row.max_views) - int(row.used_views),
        expires_in_ms=expires_in_ms,
    )
