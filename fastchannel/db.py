"""Database models (SQLAlchemy) and session management."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from fastchannel.clock import to_utc, utc_now
from fastchannel.config import get_settings


def new_id() -> str:
    return uuid.uuid4().hex


class UTCDateTime(TypeDecorator):
    """Stores instants as naive UTC, hands them back as aware UTC.

    Values are truncated to milliseconds on the way in so that comparisons
    in SQL and in Python agree.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        return to_utc(value).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        return to_utc(value)


class Base(DeclarativeBase):
    pass


class ChannelRow(Base):
    __tablename__ = "channels"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    schedule_start = Column(UTCDateTime, nullable=True)
    schedule_synced = Column(Boolean, default=False, nullable=False)
    last_webhook_call = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)

    entries = relationship(
        "ScheduleRow",
        back_populates="channel",
        cascade="all, delete-orphan",
        order_by="ScheduleRow.position",
    )


class VodRow(Base):
    __tablename__ = "vods"

    id = Column(String(64), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    hls_url = Column(String(1024), nullable=False)
    duration_ms = Column(Integer, nullable=True)
    preroll_url = Column(String(1024), nullable=True)
    preroll_duration_ms = Column(Integer, nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)

    entries = relationship(
        "ScheduleRow",
        back_populates="vod",
        cascade="all, delete-orphan",
    )


class ScheduleRow(Base):
    """One slot on a channel timeline."""
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("channel_id", "position", name="uq_schedules_channel_position"),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    channel_id = Column(String(64), ForeignKey("channels.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    vod_id = Column(String(64), ForeignKey("vods.id", ondelete="CASCADE"),
                    nullable=False, index=True)
    position = Column(Integer, nullable=False)
    scheduled_start = Column(UTCDateTime, nullable=False)
    scheduled_end = Column(UTCDateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(UTCDateTime, default=utc_now)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now)

    channel = relationship("ChannelRow", back_populates="entries")
    vod = relationship("VodRow", back_populates="entries", lazy="joined")


# ---------------------------------------------------------------------------
# Engine / session factory
# ---------------------------------------------------------------------------

_engine = None
_SessionLocal = None


def make_engine(db_url: str):
    if db_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, echo=False, **kwargs)
    return create_engine(db_url, echo=False, pool_pre_ping=True)


def get_engine():
    global _engine
    if _engine is None:
        _engine = make_engine(get_settings().db_url)
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _SessionLocal


def init_db():
    """Create all tables (idempotent)."""
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Session:  # type: ignore[misc]
    """Dependency for FastAPI — yields a session then closes."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        session.close()
