from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field as PydField
from sqlmodel import Session

from ..caller import Caller
from ..clock import Clock
from ..database import get_db
from ..models.drop import DropStatus
from ..services import drops as drop_service
from ..services.drops import DropCreate
from .deps import failure_response, get_caller, get_clock

router = APIRouter(prefix="/drops", tags=["drops"])


# -------------------------
# Schemas
# -------------------------

class ConsumeRequest(BaseModel):
    token: str = PydField(..., min_length=1)
    ua: Optional[str] = None
    ip: Optional[str] = None


# -------------------------
# Routes
# -------------------------

@router.post("")
def create_drop(
    payload: DropCreate,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    res = drop_service.create(db, payload, caller, clock=clock)
    return {"ok": res.ok, "id": res.id, "token": res.token, "url": res.url}


@router.get("")
def list_drops(
    status: Optional[DropStatus] = None,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    """
    Scoped by caller: admins/owner see everything, users their own drops,
    anonymous callers an empty list.
    """
    items = drop_service.list_drops(db, caller, status=status, limit=limit, clock=clock)
    return {"items": [i.model_dump(mode="json") for i in items]}


@router.post("/{drop_id}/revoke")
def revoke_drop(
    drop_id: str,
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
):
    res = drop_service.revoke(db, drop_id, caller, clock=clock)
    if not res.ok:
        return failure_response(res.error)
    return {"ok": True}


@router.post("/consume")
def consume_drop(
    payload: ConsumeRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    res = drop_service.consume(db, payload.token, ua=payload.ua, ip=payload.ip, clock=clock)
    if not res.ok:
        return failure_response(res.error)
    return res.to_dict()
