from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import DateTime, func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, SQLModel, create_engine, select

from burnlink.config import settings
from burnlink.database import get_db, transaction
from burnlink.errors import StoreUnavailable
from burnlink.main import app
from burnlink.models.drop import Drop
from burnlink.models.user_session import UserSession
from burnlink.models.view import View
from burnlink.services import drops
from burnlink.services.drops import DropCreate


@pytest.fixture
def unreachable_engine(tmp_path):
    # parent directory is never created, so every connect fails
    eng = create_engine(f"sqlite:///{tmp_path / 'missing' / 'burnlink.sqlite'}")
    yield eng
    eng.dispose()


class TestTimestampColumns:
    def test_all_timestamp_columns_are_naive(self):
        for table in SQLModel.metadata.sorted_tables:
            for col in table.columns:
                if col.name.endswith("_at"):
                    assert type(col.type) is DateTime, f"{table.name}.{col.name}"
                    assert not col.type.timezone

    def test_drop_and_session_round_trip(self, engine, session, clock, owner):
        res = drops.create(session, DropCreate(title="t", body="b", ttl_ms=90_000, max_views=2), clock=clock)
        clock.advance(seconds=5)
        drops.consume(session, res.token, clock=clock)

        with Session(engine) as fresh:
            d = fresh.get(Drop, res.id)
            assert d.created_at == clock.now() - timedelta(seconds=5)
            assert d.expires_at == d.created_at + timedelta(milliseconds=90_000)
            assert d.first_viewed_at == clock.now()
            assert d.created_at.tzinfo is None

            s = fresh.exec(select(UserSession).where(UserSession.user_id == owner.id)).one()
            assert s.expires_at - s.created_at == timedelta(days=settings.session_ttl_days)
            assert s.expires_at.tzinfo is None


class TestStoreUnavailable:
    def test_transaction_wraps_driver_errors(self, unreachable_engine):
        with Session(unreachable_engine) as s:
            with pytest.raises(StoreUnavailable) as info:
                with transaction(s):
                    s.exec(select(Drop)).first()
        assert isinstance(info.value.__cause__, OperationalError)

    def test_consume_propagates(self, unreachable_engine, clock):
        with Session(unreachable_engine) as s:
            with pytest.raises(StoreUnavailable):
                drops.consume(s, "any-token", clock=clock)

    def test_http_503(self, client, unreachable_engine):
        def _db():
            with Session(unreachable_engine) as s:
                yield s

        app.dependency_overrides[get_db] = _db

        r = client.get("/d/any-token")
        assert r.status_code == 503
        assert r.json() == {"detail": "Store unavailable"}

        r = client.get("/auth/me", headers={"cookie": f"{settings.session_cookie_name}=abc"})
        assert r.status_code == 503


class TestConsumeAtomicity:
    def test_failed_view_insert_leaves_drop_untouched(self, session, clock, monkeypatch):
        res = drops.create(session, DropCreate(title="t", body="b", ttl_ms=60_000, max_views=1), clock=clock)

        def orphan_view(**kw):
            kw["drop_id"] = "no-such-drop"
            return View(**kw)

        monkeypatch.setattr(drops, "View", orphan_view)
        with pytest.raises(IntegrityError):
            drops.consume(session, res.token, ip="10.0.0.1", clock=clock)

        session.expire_all()
        d = session.get(Drop, res.id)
        assert d.used_views == 0
        assert d.first_viewed_at is None
        assert d.last_viewed_at is None
        assert d.exhausted_at is None
        assert session.exec(select(func.count()).select_from(View)).one() == 0

        monkeypatch.undo()
        out = drops.consume(session, res.token, clock=clock)
        assert out.ok
        assert out.remaining == 0
