from __future__ import annotations

import os

# settings are read at import time; keep bcrypt cheap for the suite
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "test")

from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session

from burnlink.caller import Caller
from burnlink.clock import ManualClock, utcnow
from burnlink.config import settings
from burnlink.database import get_db, get_engine, init_db
from burnlink.api.deps import get_clock
from burnlink.main import app
from burnlink.services import credentials
from burnlink.services.credentials import BootstrapRequest, InviteCreate, SignupRequest


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    eng = get_engine(f"sqlite:///{tmp_path / 'burnlink.sqlite'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(utcnow().replace(microsecond=0))


@pytest.fixture
def client(engine, clock) -> Generator[TestClient, None, None]:
    def _db() -> Generator[Session, None, None]:
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def dev_credentials(monkeypatch):
    monkeypatch.setattr(settings, "dev_admin_user", "dev")
    monkeypatch.setattr(settings, "dev_admin_pass", "dev-pass-123")
    return "dev", "dev-pass-123"


def caller_for(session: Session, sid: str, clock: ManualClock) -> Caller:
    caller = credentials.resolve_session(session, sid, clock=clock)
    assert caller is not None
    return caller


@pytest.fixture
def owner(session, clock) -> Caller:
    res = credentials.bootstrap_owner(session, BootstrapRequest(display_name="Olive Owner"), clock=clock)
    assert res.ok
    return caller_for(session, res.grant.sid, clock)


def invite_token(session: Session, issuer: Caller, clock: ManualClock, minutes: int = 60) -> str:
    res = credentials.create_invite(session, InviteCreate(expires_minutes=minutes), issuer, clock=clock)
    assert res.ok
    return res.url.split("token=", 1)[1]


def signup(
    session: Session,
    issuer: Caller,
    clock: ManualClock,
    *,
    name: str = "Uma User",
    email: Optional[str] = None,
    password: str = "hunter22",
) -> Caller:
    token = invite_token(session, issuer, clock)
    res = credentials.consume_invite(
        session,
        SignupRequest(token=token, display_name=name, email=email, password=password),
        clock=clock,
    )
    assert res.ok
    return caller_for(session, res.grant.sid, clock)


@pytest.fixture
def member(session, owner, clock) -> Caller:
    return signup(session, owner, clock, email="uma@burnlink.dev")
