from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


class Streamer(Base):
    __tablename__ = "streamers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    alias: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )

    youtube: Mapped["YouTubeSubscription | None"] = relationship(
        back_populates="streamer", cascade="all, delete-orphan", uselist=False, lazy="selectin"
    )


class YouTubeSubscription(Base):
    __tablename__ = "youtube_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    streamer_id: Mapped[str] = mapped_column(
        ForeignKey("streamers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    handle: Mapped[str | None] = mapped_column(String(255), nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    hub_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hub_lease_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    lease_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    callback_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    hub_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    verify_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    topic: Mapped[str | None] = mapped_column(String(512), nullable=True)
    live: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    live_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    live_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    streamer: Mapped[Streamer] = relationship(back_populates="youtube")
