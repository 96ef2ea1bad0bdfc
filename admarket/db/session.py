from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from admarket.core.config import settings

T = TypeVar("T")

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class SessionTransactor:
    """Run a unit of work atomically on one AsyncSession.

    Repositories built on the same session never commit on their own;
    every write of the deal engine goes through ``run``.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await fn()
            await self._session.commit()
        except BaseException:
            await self._session.rollback()
            raise
        return result
