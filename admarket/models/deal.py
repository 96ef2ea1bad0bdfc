import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from admarket.db.base import Base
from admarket.services.deal_state_machine import DealStatus


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_channel_created", "channel_id", "created_at"),
        Index("ix_deals_advertiser_created", "advertiser_id", "created_at"),
    )

    channel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("channels.id", ondelete="RESTRICT"), nullable=False
    )
    advertiser_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[DealStatus] = mapped_column(
        Enum(
            DealStatus,
            name="deal_status",
            native_enum=False,
            length=30,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=DealStatus.PENDING_PAYMENT,
        nullable=False,
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    publisher_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Snapshots taken at creation; never re-read from users/channels
    escrow_wallet_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    advertiser_wallet_address: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    payout_wallet_address: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Terms frozen from the matched ad format
    format_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_native: Mapped[bool] = mapped_column(Boolean, nullable=False)
    feed_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    top_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    price_nano_ton: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Written by the payment and posting stages
    posted_message_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    release_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    refund_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
