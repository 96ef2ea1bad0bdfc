import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import admarket.models  # noqa: F401  register every table on Base.metadata
from admarket.core.actor import Actor
from admarket.db.base import Base
from admarket.models.channel import Channel, ChannelAdFormat, ChannelRole
from admarket.models.post import Post, PostType
from admarket.models.user import User

FIVE_TON = 5_000_000_000


@pytest.fixture
async def session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session on a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as s:
        yield s

    await engine.dispose()


@dataclass
class Marketplace:
    advertiser: User
    owner: User
    manager: User
    stranger: User
    channel: Channel
    template: Post

    def actor(self, user: User) -> Actor:
        return Actor(user_id=user.id, telegram_id=user.telegram_id)


async def seed_marketplace(session: AsyncSession) -> Marketplace:
    """One listed channel with an owner and a manager, one post format, one template."""
    advertiser = User(
        id=uuid.uuid4(), telegram_id=111, username="adv", wallet_address="EQ-advertiser"
    )
    owner = User(
        id=uuid.uuid4(), telegram_id=222, username="owner", wallet_address="EQ-owner"
    )
    manager = User(
        id=uuid.uuid4(), telegram_id=333, username="manager", wallet_address="EQ-manager"
    )
    stranger = User(id=uuid.uuid4(), telegram_id=444, username="stranger")
    channel = Channel(
        id=uuid.uuid4(),
        telegram_channel_id=-1001234,
        title="Test Channel",
        is_listed=True,
    )
    session.add_all([advertiser, owner, manager, stranger, channel])
    await session.flush()

    session.add_all([
        ChannelRole(channel_id=channel.id, user_id=owner.id, role="owner"),
        ChannelRole(channel_id=channel.id, user_id=manager.id, role="manager"),
        ChannelAdFormat(
            channel_id=channel.id,
            format_type="post",
            is_native=False,
            feed_hours=24,
            top_hours=2,
            price_nano_ton=FIVE_TON,
        ),
    ])
    template = Post(
        id=uuid.uuid4(),
        type=PostType.TEMPLATE,
        external_id=advertiser.id,
        name="Spring promo",
        text="Buy our stuff",
        entities=[{"type": "bold", "offset": 0, "length": 3}],
    )
    session.add(template)
    await session.commit()
    return Marketplace(advertiser, owner, manager, stranger, channel, template)


@pytest.fixture
async def marketplace(session: AsyncSession) -> Marketplace:
    return await seed_marketplace(session)


@pytest.fixture
async def session_pair(tmp_path) -> AsyncGenerator[tuple[AsyncSession, AsyncSession], None]:
    """Two sessions on separate connections to one file-backed database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'deals.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as first, factory() as second:
        yield first, second

    await engine.dispose()


@pytest.fixture
async def shared_marketplace(session_pair) -> Marketplace:
    return await seed_marketplace(session_pair[0])
