"""Deal engine: creation, review transitions and read paths for deals.

Every public operation takes the acting user explicitly, resolves the deal
or channel, authorizes, checks the state machine against the stored status
and then persists through the transaction runner. Status writes are
conditional on the status that was checked, so two concurrent transitions
on one deal never both succeed.
"""

import functools
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from admarket.api.schemas import DealCreate, DealResponse, PostContent
from admarket.core.actor import Actor
from admarket.core.config import settings
from admarket.core.errors import (
    AuthorizationError,
    ChannelNotListedError,
    DealEngineError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    PriceMismatchError,
    ValidationError,
)
from admarket.db.session import SessionTransactor
from admarket.models.channel import Channel, ChannelAdFormat, ChannelRole
from admarket.models.deal import Deal
from admarket.models.post import Post, PostType
from admarket.models.user import User
from admarket.repositories.channel import ChannelRepository
from admarket.repositories.deal import DealRepository
from admarket.repositories.post import PostRepository
from admarket.repositories.user import UserRepository
from admarket.services.deal_state_machine import DealStatus, validate_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class DealStore(Protocol):
    async def create(self, deal: Deal) -> Deal: ...

    async def get_by_id(self, deal_id: uuid.UUID) -> Deal | None: ...

    async def list_by_advertiser(
        self, advertiser_id: uuid.UUID, limit: int, offset: int
    ) -> tuple[list[Deal], int]: ...

    async def list_by_channel(
        self, channel_id: uuid.UUID, limit: int, offset: int
    ) -> tuple[list[Deal], int]: ...

    async def update_status(
        self,
        deal_id: uuid.UUID,
        *,
        expected: DealStatus,
        status: DealStatus,
        note: str | None = None,
    ) -> bool: ...


class ChannelDirectory(Protocol):
    async def get_by_external_id(self, telegram_channel_id: int) -> Channel | None: ...

    async def get_by_id(self, channel_id: uuid.UUID) -> Channel | None: ...

    async def get_role(
        self, channel_id: uuid.UUID, user_id: uuid.UUID
    ) -> ChannelRole | None: ...

    async def get_ad_formats(self, channel_id: uuid.UUID) -> list[ChannelAdFormat]: ...

    async def get_payout_wallet_address(self, channel_id: uuid.UUID) -> str | None: ...


class UserDirectory(Protocol):
    async def get_by_id(self, user_id: uuid.UUID) -> User | None: ...


class PostStore(Protocol):
    async def get_by_id(self, post_id: uuid.UUID) -> Post | None: ...

    async def copy_as_first_ad_version(
        self, template_id: uuid.UUID, deal_id: uuid.UUID
    ) -> list[Post]: ...

    async def append_ad_version(
        self, deal_id: uuid.UUID, version: int, content: Sequence[PostContent]
    ) -> list[Post]: ...

    async def get_latest_ad_version(self, deal_id: uuid.UUID) -> list[Post]: ...

    async def list_ad_versions(self, deal_id: uuid.UUID) -> dict[int, list[Post]]: ...


class TransactionRunner(Protocol):
    async def run(self, fn: Callable[[], Awaitable[T]]) -> T: ...


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class DealView:
    """A deal joined with its channel's Telegram id and (optionally) its ad."""

    deal: Deal
    channel_external_id: int
    posts: list[Post] = field(default_factory=list)

    def to_response(self) -> DealResponse:
        return DealResponse.from_deal(self.deal, self.posts, self.channel_external_id)


@dataclass
class DealPage:
    deals: list[DealView]
    total: int


def _operation(name: str):
    """Surface domain errors unchanged and wrap anything else as InternalError."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except DealEngineError as exc:
                logger.warning(
                    "%s refused: %s",
                    name,
                    exc,
                    extra={"operation": name, "error": exc.code},
                )
                raise
            except Exception as exc:
                logger.exception("%s failed", name, extra={"operation": name})
                raise InternalError(name, exc) from exc

        return wrapper

    return decorator


def _as_utc(value: datetime) -> datetime:
    # Some drivers (SQLite) hand back naive datetimes for tz-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DealService:
    def __init__(
        self,
        deals: DealStore,
        channels: ChannelDirectory,
        posts: PostStore,
        users: UserDirectory,
        tx: TransactionRunner,
        *,
        page_size: int | None = None,
        max_page_size: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._deals = deals
        self._channels = channels
        self._posts = posts
        self._users = users
        self._tx = tx
        self._page_size = page_size or settings.deals_page_size
        self._max_page_size = max_page_size or settings.deals_max_page_size
        self._now = clock

    # -- creation -----------------------------------------------------------

    @_operation("create deal")
    async def create_deal(self, actor: Actor | None, data: DealCreate) -> DealView:
        """Create a PENDING_PAYMENT deal against a channel's ad format.

        The deal and version 1 of its ad (a copy of the advertiser's
        template) are written in one transaction.
        """
        actor = self._require_actor(actor)

        channel = await self._channels.get_by_external_id(data.channel_id)
        if channel is None:
            raise NotFoundError("channel", data.channel_id)
        if not channel.is_listed:
            raise ChannelNotListedError(data.channel_id)

        ad_format = await self._match_ad_format(channel, data)
        if ad_format.price_nano_ton != data.price_nano_ton:
            raise PriceMismatchError(data.price_nano_ton, ad_format.price_nano_ton)

        if _as_utc(data.scheduled_at) <= self._now():
            raise ValidationError({"scheduled_at": "must be in the future"})

        # Missing and foreign templates look the same to the caller
        template = await self._posts.get_by_id(data.template_post_id)
        if (
            template is None
            or template.type != PostType.TEMPLATE
            or template.external_id != actor.user_id
        ):
            raise AuthorizationError("template post is not yours")

        advertiser = await self._users.get_by_id(actor.user_id)
        if advertiser is None:
            raise NotFoundError("user", actor.user_id)
        payout_wallet = await self._channels.get_payout_wallet_address(channel.id)

        deal = Deal(
            id=uuid.uuid4(),
            channel_id=channel.id,
            advertiser_id=actor.user_id,
            status=DealStatus.PENDING_PAYMENT,
            scheduled_at=_as_utc(data.scheduled_at),
            advertiser_wallet_address=advertiser.wallet_address,
            payout_wallet_address=payout_wallet,
            format_type=ad_format.format_type,
            is_native=ad_format.is_native,
            feed_hours=ad_format.feed_hours,
            top_hours=ad_format.top_hours,
            price_nano_ton=ad_format.price_nano_ton,
        )

        async def write() -> tuple[Deal, list[Post]]:
            created = await self._deals.create(deal)
            posts = await self._posts.copy_as_first_ad_version(
                data.template_post_id, created.id
            )
            return created, posts

        created, posts = await self._tx.run(write)

        logger.info(
            "Deal %s created on channel %s",
            created.id,
            channel.telegram_channel_id,
            extra={
                "deal_id": str(created.id),
                "channel_id": channel.telegram_channel_id,
                "advertiser_id": actor.telegram_id,
                "price_nano_ton": created.price_nano_ton,
            },
        )
        return DealView(created, channel.telegram_channel_id, posts)

    async def _match_ad_format(
        self, channel: Channel, data: DealCreate
    ) -> ChannelAdFormat:
        formats = await self._channels.get_ad_formats(channel.id)
        for ad_format in formats:
            if (
                ad_format.format_type == data.format_type
                and ad_format.is_native == data.is_native
                and ad_format.feed_hours == data.feed_hours
                and ad_format.top_hours == data.top_hours
            ):
                return ad_format
        raise NotFoundError("ad format")

    # -- queries ------------------------------------------------------------

    @_operation("get deal")
    async def get_deal(self, actor: Actor | None, deal_id: uuid.UUID) -> DealView:
        """Return the deal with its latest ad version.

        Visible to the deal's advertiser and to anyone holding a role on
        the deal's channel.
        """
        actor = self._require_actor(actor)
        deal = await self._require_participant(actor, deal_id)
        channel = await self._get_channel(deal.channel_id)
        posts = await self._posts.get_latest_ad_version(deal.id)
        return DealView(deal, channel.telegram_channel_id, posts)

    @_operation("list ad versions")
    async def list_ad_versions(
        self, actor: Actor | None, deal_id: uuid.UUID
    ) -> dict[int, list[Post]]:
        """Every retained version of the deal's creative, oldest first."""
        actor = self._require_actor(actor)
        deal = await self._require_participant(actor, deal_id)
        return await self._posts.list_ad_versions(deal.id)

    @_operation("list advertiser deals")
    async def list_advertiser_deals(
        self, actor: Actor | None, limit: int | None = None, offset: int = 0
    ) -> DealPage:
        actor = self._require_actor(actor)
        limit, offset = self._page_bounds(limit, offset)

        deals, total = await self._deals.list_by_advertiser(actor.user_id, limit, offset)

        channel_ids: dict[uuid.UUID, int] = {}
        views = []
        for deal in deals:
            if deal.channel_id not in channel_ids:
                channel = await self._get_channel(deal.channel_id)
                channel_ids[deal.channel_id] = channel.telegram_channel_id
            views.append(DealView(deal, channel_ids[deal.channel_id]))
        return DealPage(views, total)

    @_operation("list publisher deals")
    async def list_publisher_deals(
        self,
        actor: Actor | None,
        channel_external_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> DealPage:
        actor = self._require_actor(actor)
        limit, offset = self._page_bounds(limit, offset)

        channel = await self._channels.get_by_external_id(channel_external_id)
        if channel is None:
            raise NotFoundError("channel", channel_external_id)
        if not await self._has_channel_role(channel.id, actor.user_id):
            raise AuthorizationError("no role on this channel")

        deals, total = await self._deals.list_by_channel(channel.id, limit, offset)
        return DealPage([DealView(deal, channel_external_id) for deal in deals], total)

    # -- publisher transitions ----------------------------------------------

    @_operation("approve deal")
    async def approve(self, actor: Actor | None, deal_id: uuid.UUID) -> Deal:
        deal = await self._require_publisher(actor, deal_id)
        return await self._transition(deal, DealStatus.APPROVED)

    @_operation("reject deal")
    async def reject(
        self, actor: Actor | None, deal_id: uuid.UUID, reason: str | None = None
    ) -> Deal:
        deal = await self._require_publisher(actor, deal_id)
        note = reason.strip() if reason and reason.strip() else None
        return await self._transition(deal, DealStatus.REJECTED, note)

    @_operation("request changes")
    async def request_changes(
        self, actor: Actor | None, deal_id: uuid.UUID, note: str
    ) -> Deal:
        deal = await self._require_publisher(actor, deal_id)
        validate_transition(deal.status, DealStatus.CHANGES_REQUESTED)
        if not note or not note.strip():
            raise ValidationError({"note": "is required"})
        return await self._transition(deal, DealStatus.CHANGES_REQUESTED, note.strip())

    # -- advertiser transitions ---------------------------------------------

    @_operation("cancel deal")
    async def cancel(self, actor: Actor | None, deal_id: uuid.UUID) -> Deal:
        deal = await self._require_advertiser(actor, deal_id)
        validate_transition(deal.status, DealStatus.CANCELLED)
        if self._now() >= _as_utc(deal.scheduled_at):
            raise ValidationError({"scheduled_at": "posting time has already arrived"})
        return await self._transition(deal, DealStatus.CANCELLED)

    @_operation("submit revision")
    async def submit_revision(
        self,
        actor: Actor | None,
        deal_id: uuid.UUID,
        content: Sequence[PostContent],
    ) -> list[Post]:
        """Append a new ad version and send the deal back to review.

        Only allowed from CHANGES_REQUESTED. The new version number is the
        latest stored version plus one; both writes share one transaction.
        """
        deal = await self._require_advertiser(actor, deal_id)
        validate_transition(deal.status, DealStatus.PENDING_REVIEW)
        if deal.status != DealStatus.CHANGES_REQUESTED:
            raise InvalidTransitionError(deal.status, DealStatus.PENDING_REVIEW)
        self._validate_content(content)

        latest = await self._posts.get_latest_ad_version(deal.id)
        current_version = latest[0].version if latest and latest[0].version else 0
        next_version = current_version + 1

        async def write() -> list[Post]:
            posts = await self._posts.append_ad_version(deal.id, next_version, content)
            await self._apply_status(deal, DealStatus.PENDING_REVIEW)
            return posts

        posts = await self._tx.run(write)

        logger.info(
            "Deal %s revision %d submitted",
            deal.id,
            next_version,
            extra={"deal_id": str(deal.id), "version": next_version},
        )
        return posts

    @staticmethod
    def _validate_content(content: Sequence[PostContent]) -> None:
        if not content:
            raise ValidationError({"content": "at least one fragment is required"})
        for index, fragment in enumerate(content):
            if not fragment.text and not fragment.media_file_id:
                raise ValidationError({f"content[{index}]": "needs text or media"})

    # -- helpers ------------------------------------------------------------

    async def _transition(
        self, deal: Deal, target: DealStatus, note: str | None = None
    ) -> Deal:
        previous = deal.status
        validate_transition(previous, target)
        await self._tx.run(lambda: self._apply_status(deal, target, note))

        updated = await self._deals.get_by_id(deal.id)
        if updated is None:
            raise NotFoundError("deal", deal.id)

        logger.info(
            "Deal %s moved %s -> %s",
            deal.id,
            previous,
            target,
            extra={"deal_id": str(deal.id), "from_status": previous, "status": target},
        )
        return updated

    async def _apply_status(
        self, deal: Deal, target: DealStatus, note: str | None = None
    ) -> None:
        """Conditionally write ``target``; runs inside a transaction.

        A lost race is reported against the status that won it.
        """
        if await self._deals.update_status(
            deal.id, expected=deal.status, status=target, note=note
        ):
            return
        current = await self._deals.get_by_id(deal.id)
        if current is None:
            raise NotFoundError("deal", deal.id)
        raise InvalidTransitionError(current.status, target)

    @staticmethod
    def _require_actor(actor: Actor | None) -> Actor:
        if actor is None:
            raise AuthorizationError("authentication required")
        return actor

    async def _get_deal(self, deal_id: uuid.UUID) -> Deal:
        deal = await self._deals.get_by_id(deal_id)
        if deal is None:
            raise NotFoundError("deal", deal_id)
        return deal

    async def _get_channel(self, channel_id: uuid.UUID) -> Channel:
        channel = await self._channels.get_by_id(channel_id)
        if channel is None:
            raise NotFoundError("channel", channel_id)
        return channel

    async def _has_channel_role(self, channel_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        return await self._channels.get_role(channel_id, user_id) is not None

    async def _require_publisher(self, actor: Actor | None, deal_id: uuid.UUID) -> Deal:
        """Deal lookup for actions reserved to the channel's owner or managers."""
        actor = self._require_actor(actor)
        deal = await self._get_deal(deal_id)
        if not await self._has_channel_role(deal.channel_id, actor.user_id):
            raise AuthorizationError("no role on the deal's channel")
        return deal

    async def _require_advertiser(self, actor: Actor | None, deal_id: uuid.UUID) -> Deal:
        actor = self._require_actor(actor)
        deal = await self._get_deal(deal_id)
        if deal.advertiser_id != actor.user_id:
            raise AuthorizationError("only the advertiser can do this")
        return deal

    async def _require_participant(self, actor: Actor, deal_id: uuid.UUID) -> Deal:
        deal = await self._get_deal(deal_id)
        if deal.advertiser_id != actor.user_id and not await self._has_channel_role(
            deal.channel_id, actor.user_id
        ):
            raise AuthorizationError("not a participant in this deal")
        return deal

    def _page_bounds(self, limit: int | None, offset: int) -> tuple[int, int]:
        if offset < 0:
            raise ValidationError({"offset": "must not be negative"})
        if limit is None:
            limit = self._page_size
        return max(1, min(limit, self._max_page_size)), offset


def build_deal_service(session: AsyncSession) -> DealService:
    """Wire the deal engine to SQLAlchemy storage sharing one session."""
    return DealService(
        deals=DealRepository(session),
        channels=ChannelRepository(session),
        posts=PostRepository(session),
        users=UserRepository(session),
        tx=SessionTransactor(session),
    )
