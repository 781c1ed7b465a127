from __future__ import annotations

from datetime import timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlmodel import Session

from ..caller import Caller
from ..clock import Clock, system_clock
from ..config import settings
from ..database import get_db
from ..errors import Failure
from ..services.credentials import SessionGrant, resolve_session

_STATUS_FOR_FAILURE: Dict[Failure, int] = {
    Failure.LINK_INVALID_OR_EXPIRED: 404,
    Failure.UNAUTHORIZED: 401,
    Failure.FORBIDDEN: 403,
    Failure.INVALID_CREDENTIALS: 401,
    Failure.INVALID_OR_USED_INVITE: 400,
    Failure.ALREADY_BOOTSTRAPPED: 409,
    Failure.EMAIL_UNAVAILABLE: 409,
}


def get_clock() -> Clock:
    """
    Dependency seam so tests can pin time for a whole request.
    """
    return system_clock


def get_caller(
    request: Request,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> Optional[Caller]:
    sid = request.cookies.get(settings.session_cookie_name)
    return resolve_session(db, sid, clock=clock)


def failure_response(error: Optional[Failure]) -> JSONResponse:
    reason = error or Failure.UNAUTHORIZED
    return JSONResponse(
        status_code=_STATUS_FOR_FAILURE.get(reason, 400),
        content={"ok": False, "error": reason.value},
    )


def apply_grant(response: Response, grant: Optional[SessionGrant]) -> None:
    """
    Deliver (or clear) the session credential as an HttpOnly cookie.
    """
    if grant is None:
        return

    name = settings.session_cookie_name
    if grant.cleared:
        response.delete_cookie(name, path="/", httponly=True, samesite="lax", secure=settings.is_prod)
        return

    response.set_cookie(
        name,
        grant.sid,
        expires=grant.expires_at.replace(tzinfo=timezone.utc),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_prod,
    )


def caller_dict(caller: Optional[Caller]) -> Optional[Dict[str, Any]]:
    if caller is None:
        return None
    return {"id": caller.id, "displayName": caller.display_name, "role": caller.role}
