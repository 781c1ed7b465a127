from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from ..caller import Caller, is_privileged
from ..clock import Clock
from ..database import get_db
from ..errors import Failure
from ..services import reporting
from ..services.reporting import MAX_WINDOW_MINUTES, DropStats, Overview
from .deps import failure_response, get_caller, get_clock

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/drops/{drop_id}", response_model=DropStats)
def drop_stats(
    drop_id: str,
    window_minutes: int = Query(default=60, ge=1, le=MAX_WINDOW_MINUTES),
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
):
    if not is_privileged(caller):
        return failure_response(Failure.UNAUTHORIZED)

    stats = reporting.drop_stats(db, drop_id, window_minutes, clock=clock)
    if stats is None:
        raise HTTPException(status_code=404, detail="Drop not found")
    return stats


@router.get("/overview", response_model=Overview)
def overview(
    window_minutes: int = Query(default=60, ge=1, le=MAX_WINDOW_MINUTES),
    db: Session = Depends(get_db),
    caller: Optional[Caller] = Depends(get_caller),
    clock: Clock = Depends(get_clock),
):
    if not is_privileged(caller):
        return failure_response(Failure.UNAUTHORIZED)
    return reporting.overview(db, window_minutes, clock=clock)
