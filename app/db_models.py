"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .models import ActivityType, WatchedStatus

CONTENT_SOURCE_CONSTRAINT = "uq_content_source"
WATCHED_OWNER_CONSTRAINT = "uq_watched_user_content"


class Content(Base):
    """A title cached from the external catalog, shared by every user."""

    __tablename__ = "content"
    __table_args__ = (
        UniqueConstraint("tmdb_id", "type", name=CONTENT_SOURCE_CONSTRAINT),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tmdb_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(255))
    overview: Mapped[str] = mapped_column(Text, default="")
    poster_path: Mapped[str] = mapped_column(String(255), default="")
    release_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    popularity: Mapped[float] = mapped_column(Float, default=0.0)
    vote_average: Mapped[float] = mapped_column(Float, default=0.0)
    vote_count: Mapped[int] = mapped_column(Integer, default=0)
    imdb_id: Mapped[str] = mapped_column(String(32), default="")
    status: Mapped[str] = mapped_column(String(64), default="")
    budget: Mapped[int] = mapped_column(BigInteger, default=0)
    revenue: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )


class Watched(Base):
    """One user's status and rating for a cached title."""

    __tablename__ = "watched"
    __table_args__ = (
        UniqueConstraint("user_id", "content_id", name=WATCHED_OWNER_CONSTRAINT),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    content_id: Mapped[int] = mapped_column(ForeignKey("content.id"))
    status: Mapped[WatchedStatus] = mapped_column(
        Enum(WatchedStatus, native_enum=False, length=16),
        default=WatchedStatus.WATCHING,
    )
    rating: Mapped[int] = mapped_column(SmallInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    content: Mapped[Content] = relationship()
    activity: Mapped[list["Activity"]] = relationship(
        back_populates="watched",
        order_by="Activity.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Activity(Base):
    """Immutable record of one watched entry transition."""

    __tablename__ = "activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    watched_id: Mapped[int] = mapped_column(
        ForeignKey("watched.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[ActivityType] = mapped_column(
        Enum(ActivityType, native_enum=False, length=32)
    )
    data: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    watched: Mapped[Watched] = relationship(back_populates="activity")
