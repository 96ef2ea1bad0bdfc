"""Post storage: template lookup and the numbered ad versions of a deal."""

import uuid
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from admarket.models.post import Post, PostType

FIRST_AD_VERSION = 1


class PostFragment(Protocol):
    name: str | None
    text: str | None
    entities: list | None
    media_type: str | None
    media_file_id: str | None
    has_media_spoiler: bool
    show_caption_above_media: bool


class PostRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, post_id: uuid.UUID) -> Post | None:
        result = await self._session.execute(
            select(Post).where(Post.id == post_id, Post.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_by_media_group_id(self, media_group_id: str) -> list[Post]:
        result = await self._session.execute(
            select(Post)
            .where(Post.media_group_id == media_group_id, Post.deleted_at.is_(None))
            .order_by(Post.position.asc(), Post.created_at.asc())
        )
        return list(result.scalars().all())

    async def copy_as_first_ad_version(
        self, template_id: uuid.UUID, deal_id: uuid.UUID
    ) -> list[Post]:
        """Copy a template (every fragment of its album) into ad version 1."""
        source = await self.get_by_id(template_id)
        if source is None:
            raise LookupError(f"template post {template_id} disappeared")

        if source.media_group_id is not None:
            sources = await self.get_by_media_group_id(source.media_group_id)
            media_group_id = str(uuid.uuid4())
        else:
            sources = [source]
            media_group_id = None

        posts = [
            self._ad_fragment(
                deal_id,
                FIRST_AD_VERSION,
                position,
                fragment,
                media_group_id,
                name=fragment.name if position == 0 else None,
            )
            for position, fragment in enumerate(sources)
        ]
        return await self._save(posts)

    async def append_ad_version(
        self, deal_id: uuid.UUID, version: int, content: Sequence[PostFragment]
    ) -> list[Post]:
        media_group_id = str(uuid.uuid4()) if len(content) > 1 else None
        posts = [
            self._ad_fragment(
                deal_id, version, position, fragment, media_group_id, name=fragment.name
            )
            for position, fragment in enumerate(content)
        ]
        return await self._save(posts)

    async def get_latest_ad_version(self, deal_id: uuid.UUID) -> list[Post]:
        latest = (
            select(func.max(Post.version))
            .where(
                Post.type == PostType.AD,
                Post.external_id == deal_id,
                Post.deleted_at.is_(None),
            )
            .scalar_subquery()
        )
        result = await self._session.execute(
            select(Post)
            .where(
                Post.type == PostType.AD,
                Post.external_id == deal_id,
                Post.deleted_at.is_(None),
                Post.version == latest,
            )
            .order_by(Post.position.asc(), Post.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_ad_versions(self, deal_id: uuid.UUID) -> dict[int, list[Post]]:
        result = await self._session.execute(
            select(Post)
            .where(
                Post.type == PostType.AD,
                Post.external_id == deal_id,
                Post.deleted_at.is_(None),
            )
            .order_by(Post.version.asc(), Post.position.asc(), Post.created_at.asc())
        )
        versions: dict[int, list[Post]] = {}
        for post in result.scalars().all():
            versions.setdefault(post.version, []).append(post)
        return versions

    @staticmethod
    def _ad_fragment(
        deal_id: uuid.UUID,
        version: int,
        position: int,
        fragment: PostFragment,
        media_group_id: str | None,
        name: str | None,
    ) -> Post:
        return Post(
            type=PostType.AD,
            external_id=deal_id,
            version=version,
            position=position,
            name=name,
            media_group_id=media_group_id,
            text=fragment.text,
            entities=fragment.entities,
            media_type=fragment.media_type,
            media_file_id=fragment.media_file_id,
            has_media_spoiler=fragment.has_media_spoiler,
            show_caption_above_media=fragment.show_caption_above_media,
        )

    async def _save(self, posts: list[Post]) -> list[Post]:
        self._session.add_all(posts)
        await self._session.flush()
        for post in posts:
            await self._session.refresh(post)
        return posts
