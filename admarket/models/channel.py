import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from admarket.db.base import Base


class ChannelRoleType(StrEnum):
    OWNER = "owner"
    MANAGER = "manager"


class AdFormatType(StrEnum):
    POST = "post"
    REPOST = "repost"
    STORY = "story"


class Channel(Base):
    __tablename__ = "channels"

    telegram_channel_id: Mapped[int] = mapped_column(
        BigInteger, unique=True, index=True, nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_listed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    roles = relationship(
        "ChannelRole", back_populates="channel", cascade="all, delete-orphan"
    )
    ad_formats = relationship(
        "ChannelAdFormat", back_populates="channel", cascade="all, delete-orphan"
    )


class ChannelRole(Base):
    __tablename__ = "channel_roles"
    __table_args__ = (
        UniqueConstraint("channel_id", "user_id", name="uq_channel_role_user"),
    )

    channel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(
        String(20), default=ChannelRoleType.MANAGER, server_default="manager"
    )

    channel = relationship("Channel", back_populates="roles")


class ChannelAdFormat(Base):
    __tablename__ = "channel_ad_formats"
    __table_args__ = (
        UniqueConstraint(
            "channel_id",
            "format_type",
            "is_native",
            "feed_hours",
            "top_hours",
            name="uq_channel_ad_format_terms",
        ),
    )

    channel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    format_type: Mapped[str] = mapped_column(
        String(20), default=AdFormatType.POST, server_default="post"
    )
    is_native: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    feed_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    top_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    price_nano_ton: Mapped[int] = mapped_column(BigInteger, nullable=False)

    channel = relationship("Channel", back_populates="ad_formats")
