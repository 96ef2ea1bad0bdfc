"""SQLAlchemy-backed deal storage. Never commits; see SessionTransactor."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from admarket.models.deal import Deal
from admarket.services.deal_state_machine import DealStatus


class DealRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, deal: Deal) -> Deal:
        self._session.add(deal)
        await self._session.flush()
        await self._session.refresh(deal)
        return deal

    async def get_by_id(self, deal_id: uuid.UUID) -> Deal | None:
        # populate_existing: a re-read after a lost conditional update must
        # see the row as stored, not the copy cached in the identity map
        result = await self._session.execute(
            select(Deal)
            .where(Deal.id == deal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_advertiser(
        self, advertiser_id: uuid.UUID, limit: int, offset: int
    ) -> tuple[list[Deal], int]:
        return await self._paginate(Deal.advertiser_id == advertiser_id, limit, offset)

    async def list_by_channel(
        self, channel_id: uuid.UUID, limit: int, offset: int
    ) -> tuple[list[Deal], int]:
        return await self._paginate(Deal.channel_id == channel_id, limit, offset)

    async def update_status(
        self,
        deal_id: uuid.UUID,
        *,
        expected: DealStatus,
        status: DealStatus,
        note: str | None = None,
    ) -> bool:
        """Move a deal from ``expected`` to ``status``.

        The write only lands if the stored status still equals ``expected``,
        so of two racing transitions at most one returns True.
        """
        result = await self._session.execute(
            update(Deal)
            .where(Deal.id == deal_id, Deal.status == expected)
            .values(
                status=status,
                publisher_note=note,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _paginate(self, condition, limit: int, offset: int) -> tuple[list[Deal], int]:
        total = await self._session.scalar(
            select(func.count()).select_from(Deal).where(condition)
        )
        result = await self._session.execute(
            select(Deal)
            .where(condition)
            .order_by(Deal.created_at.desc(), Deal.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
