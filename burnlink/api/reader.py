from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from ..clock import Clock
from ..database import get_db
from ..services import drops as drop_service
from .deps import failure_response, get_clock

router = APIRouter(tags=["reader"])


def _client_ip(request: Request) -> Optional[str]:
    """
    First hop of X-Forwarded-For, else X-Real-IP, else the socket peer.
    """
    raw = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip") or ""
    ip = raw.split(",")[0].strip()
    if ip:
        return ip
    return request.client.host if request.client else None


@router.get("/d/{token}")
def read_drop(
    token: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Public reader. Every hit spends a view: url drops redirect, text drops
    come back as JSON.
    """
    res = drop_service.consume(
        db,
        token,
        ua=request.headers.get("user-agent"),
        ip=_client_ip(request),
        clock=clock,
    )
    if not res.ok:
        return failure_response(res.error)

    if res.url is not None:
        return RedirectResponse(res.url, status_code=307, headers={"Cache-Control": "no-store"})

    response.headers["Cache-Control"] = "no-store"
    return res.to_dict()
