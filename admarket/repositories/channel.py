"""Read-only channel directory: channels, roles, ad formats, payout wallet."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admarket.models.channel import (
    Channel,
    ChannelAdFormat,
    ChannelRole,
    ChannelRoleType,
)
from admarket.models.user import User


class ChannelRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_external_id(self, telegram_channel_id: int) -> Channel | None:
        result = await self._session.execute(
            select(Channel).where(
                Channel.telegram_channel_id == telegram_channel_id,
                Channel.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, channel_id: uuid.UUID) -> Channel | None:
        result = await self._session.execute(
            select(Channel).where(Channel.id == channel_id)
        )
        return result.scalar_one_or_none()

    async def get_role(
        self, channel_id: uuid.UUID, user_id: uuid.UUID
    ) -> ChannelRole | None:
        """Return the user's role on a channel (owner or manager), or None."""
        result = await self._session.execute(
            select(ChannelRole).where(
                ChannelRole.channel_id == channel_id,
                ChannelRole.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_ad_formats(self, channel_id: uuid.UUID) -> list[ChannelAdFormat]:
        result = await self._session.execute(
            select(ChannelAdFormat)
            .where(ChannelAdFormat.channel_id == channel_id)
            .order_by(ChannelAdFormat.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_payout_wallet_address(self, channel_id: uuid.UUID) -> str | None:
        """Current wallet of the channel owner; payouts go there."""
        result = await self._session.execute(
            select(User.wallet_address)
            .join(ChannelRole, ChannelRole.user_id == User.id)
            .where(
                ChannelRole.channel_id == channel_id,
                ChannelRole.role == ChannelRoleType.OWNER,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()
