import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from admarket.db.base import Base


class PostType(StrEnum):
    TEMPLATE = "template"
    AD = "ad"


class MediaType(StrEnum):
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    ANIMATION = "animation"
    AUDIO = "audio"
    VOICE = "voice"
    VIDEO_NOTE = "video_note"
    STICKER = "sticker"


class Post(Base):
    """One text/media fragment of a creative.

    Templates are owned by a user (``external_id`` is the user id); ad
    versions belong to a deal (``external_id`` is the deal id) and carry a
    ``version`` number. Fragments of one album share a ``media_group_id``
    and are ordered by ``position``.
    """

    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_type_external_version", "type", "external_id", "version"),
    )

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    external_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    media_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    entities: Mapped[list | None] = mapped_column(JSON, nullable=True)
    media_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    media_file_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    has_media_spoiler: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    show_caption_above_media: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
