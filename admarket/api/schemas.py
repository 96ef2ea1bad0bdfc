import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from admarket.models.channel import AdFormatType
from admarket.models.deal import Deal
from admarket.models.post import MediaType, Post
from admarket.services.deal_state_machine import DealStatus


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class DealCreate(BaseModel):
    channel_id: int = Field(..., description="Telegram channel id")
    format_type: AdFormatType
    is_native: bool = False
    feed_hours: int = Field(..., gt=0)
    top_hours: int = Field(..., gt=0)
    price_nano_ton: int = Field(..., gt=0)
    template_post_id: uuid.UUID
    scheduled_at: datetime


class PostContent(BaseModel):
    """One fragment of a revised creative."""

    name: str | None = None
    text: str | None = None
    entities: list | None = None
    media_type: MediaType | None = None
    media_file_id: str | None = None
    has_media_spoiler: bool = False
    show_caption_above_media: bool = False


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class PostMediaItem(BaseModel):
    post_id: uuid.UUID
    media_type: str
    has_media_spoiler: bool = False
    show_caption_above_media: bool = False


class AdResponse(BaseModel):
    id: uuid.UUID
    version: int | None = None
    text: str | None = None
    entities: list | None = None
    media: list[PostMediaItem] = []
    created_at: datetime

    @classmethod
    def from_posts(cls, posts: list[Post]) -> "AdResponse":
        """Collapse an album into one ad: first text fragment + all media."""
        first = posts[0]
        text: str | None = None
        entities: list | None = None
        media: list[PostMediaItem] = []
        for post in posts:
            if post.text is not None and text is None:
                text = post.text
                entities = post.entities or None
            if post.media_type is not None:
                media.append(
                    PostMediaItem(
                        post_id=post.id,
                        media_type=post.media_type,
                        has_media_spoiler=post.has_media_spoiler,
                        show_caption_above_media=post.show_caption_above_media,
                    )
                )
        return cls(
            id=first.id,
            version=first.version,
            text=text,
            entities=entities,
            media=media,
            created_at=first.created_at,
        )


class DealResponse(BaseModel):
    id: uuid.UUID
    channel_id: int
    status: DealStatus
    scheduled_at: datetime
    publisher_note: str | None = None
    format_type: str
    is_native: bool
    feed_hours: int
    top_hours: int
    price_nano_ton: int
    ad: AdResponse | None = None
    created_at: datetime

    @classmethod
    def from_deal(
        cls, deal: Deal, posts: list[Post] | None, channel_external_id: int
    ) -> "DealResponse":
        return cls(
            id=deal.id,
            channel_id=channel_external_id,
            status=deal.status,
            scheduled_at=deal.scheduled_at,
            publisher_note=deal.publisher_note,
            format_type=deal.format_type,
            is_native=deal.is_native,
            feed_hours=deal.feed_hours,
            top_hours=deal.top_hours,
            price_nano_ton=deal.price_nano_ton,
            ad=AdResponse.from_posts(posts) if posts else None,
            created_at=deal.created_at,
        )


class DealsResponse(BaseModel):
    deals: list[DealResponse]
    total: int
