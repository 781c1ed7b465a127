from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel
from sqlmodel import Session

from ..caller import Caller
from ..clock import Clock
from ..config import settings
from ..database import get_db
from ..services import credentials as auth_service
from ..services.credentials import BootstrapRequest, InviteCreate, LoginRequest, SignupRequest
from .deps import apply_grant, caller_dict, failure_response, get_caller, get_clock

router = APIRouter(prefix="/auth", tags=["auth"])


class DevLoginRequest(BaseModel):
    username: str = ""
    password: str = ""


def _session_response(res: auth_service.AuthResult, response: Response):
    if not res.ok:
        return failure_response(res.error)
    apply_grant(response, res.grant)
    return {"ok": True}


@router.get("/me")
def me(caller: Optional[Caller] = Depends(get_caller)):
    return caller_dict(caller)


@router.post("/bootstrap-owner")
def bootstrap_owner(
    payload: BootstrapRequest,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    First-run setup: creates the owner account and signs it in.
    Rejected once any user exists.
    """
    return _session_response(auth_service.bootstrap_owner(db, payload, clock=clock), response)


@router.post("/invites")
def create_invite(
    payload: InviteCreate,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
):
    res = auth_service.create_invite(db, payload, caller, clock=clock)
    if not res.ok:
        return failure_response(res.error)
    return {"ok": True, "url": res.url, "expires_at": res.expires_at.isoformat() if res.expires_at else None}


@router.post("/invites/consume")
def consume_invite(
    payload: SignupRequest,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return _session_response(auth_service.consume_invite(db, payload, clock=clock), response)


@router.post("/login")
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return _session_response(auth_service.login_with_password(db, payload, clock=clock), response)


@router.post("/logout")
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    sid = request.cookies.get(settings.session_cookie_name)
    return _session_response(auth_service.logout(db, sid), response)


@router.post("/dev-login")
def dev_login(
    payload: DevLoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Local-only owner login using DEV_ADMIN_USER / DEV_ADMIN_PASS.
    """
    res = auth_service.dev_login(db, payload.username, payload.password, clock=clock)
    return _session_response(res, response)
