"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

# Override env before importing anything from fastchannel
os.environ["DB_URL"] = "sqlite://"  # in-memory
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["PUBLIC_URL"] = "http://scheduler.test"
os.environ["CHANNEL_LOCK_WAIT_SECONDS"] = "0.2"

from fastchannel.api.app import create_app
from fastchannel.db import Base, ChannelRow, VodRow, get_db, make_engine
from fastchannel.scheduling.service import ScheduleService
from fastchannel.store import TimelineStore
from tests.harness import T0


# ---------------------------------------------------------------------------
# Lock backend
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def fake_redis():
    import fastchannel.locks as _locks

    old = _locks._client
    _locks._client = fakeredis.FakeRedis(decode_responses=True)
    yield _locks._client
    _locks._client = old


# ---------------------------------------------------------------------------
# DB fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def db_engine():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    factory = sessionmaker(bind=db_engine, expire_on_commit=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture()
def store(db_session) -> TimelineStore:
    return TimelineStore(db_session)


@pytest.fixture()
def service(store) -> ScheduleService:
    return ScheduleService(store)


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_channel(store):
    def _make(name: str = "Retro Cartoons", schedule_start: datetime | None = T0, **extra) -> ChannelRow:
        with store.transaction():
            return store.add_channel(
                name=name,
                schedule_start=schedule_start,
                schedule_synced=extra.pop("schedule_synced", False),
                **extra,
            )
    return _make


@pytest.fixture()
def make_vod(store):
    counter = {"n": 0}

    def _make(duration_ms: int | None = 600_000, **extra) -> VodRow:
        counter["n"] += 1
        fields = {
            "title": f"Episode {counter['n']}",
            "hls_url": f"https://cdn.test/vod{counter['n']}/index.m3u8",
            "duration_ms": duration_ms,
        }
        fields.update(extra)
        with store.transaction():
            return store.add_vod(**fields)
    return _make


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(db_engine) -> Generator[TestClient, None, None]:
    import fastchannel.db as _db_mod

    # Patch the global db engine so init_db() and any internal usage
    # share the same in-memory database as the fixture
    old_engine = _db_mod._engine
    old_session = _db_mod._SessionLocal
    _db_mod._engine = db_engine
    _db_mod._SessionLocal = sessionmaker(bind=db_engine, expire_on_commit=False)

    app = create_app()
    factory = sessionmaker(bind=db_engine, expire_on_commit=False)

    def _override_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_db

    with TestClient(app) as c:
        yield c

    # Restore
    _db_mod._engine = old_engine
    _db_mod._SessionLocal = old_session
