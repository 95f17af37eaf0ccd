from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from snapslock.db.models.image_likes import ImageLike
from snapslock.db.models.images import Image
from snapslock.db.session import create_sessionmaker, with_sqlite_busy_retry


@dataclass(frozen=True, slots=True)
class LikeToggle:
    image_id: str
    is_liked: bool
    likes_count: int

    @property
    def action(self) -> str:
        return "liked" if self.is_liked else "unliked"


@dataclass(frozen=True, slots=True)
class LikeStatus:
    likes_count: int
    is_liked: bool


async def _current_status(conn: AsyncConnection, *, user_id: str, image_id: str) -> LikeToggle:
    count = (await conn.execute(sa.select(Image.likes_count).where(Image.id == image_id))).scalar_one_or_none()
    liked = (
        await conn.execute(
            sa.select(ImageLike.id).where(ImageLike.user_id == user_id, ImageLike.image_id == image_id).limit(1)
        )
    ).first() is not None
    return LikeToggle(image_id=image_id, is_liked=liked, likes_count=int(count or 0))


async def toggle_like(engine: AsyncEngine, *, user_id: str, image_id: str) -> LikeToggle | None:
    """Flips the (user, image) like in one transaction.

    Returns ``None`` when the image does not exist. The like row is the source
    of truth; ``images.likes_count`` is adjusted in SQL alongside it.
    """

    async def _op() -> LikeToggle | None:
        try:
            async with engine.begin() as conn:
                exists = (await conn.execute(sa.select(Image.id).where(Image.id == image_id))).first()
                if exists is None:
                    return None

                removed = (
                    await conn.execute(
                        sa.delete(ImageLike)
                        .where(ImageLike.user_id == user_id, ImageLike.image_id == image_id)
                        .returning(ImageLike.id)
                    )
                ).first()

                if removed is not None:
                    delta = sa.case((Image.likes_count > 0, Image.likes_count - 1), else_=0)
                    liked = False
                else:
                    await conn.execute(sa.insert(ImageLike).values(user_id=user_id, image_id=image_id))
                    delta = Image.likes_count + 1
                    liked = True

                count = (
                    await conn.execute(
                        sa.update(Image)
                        .where(Image.id == image_id)
                        .values(likes_count=delta)
                        .returning(Image.likes_count)
                    )
                ).scalar_one()
                return LikeToggle(image_id=image_id, is_liked=liked, likes_count=int(count))
        except IntegrityError:
            # A concurrent request from the same user inserted the row first.
            async with engine.connect() as conn:
                return await _current_status(conn, user_id=user_id, image_id=image_id)

    return await with_sqlite_busy_retry(_op)


async def get_like_status(engine: AsyncEngine, *, image_id: str, user_id: str | None) -> LikeStatus:
    Session = create_sessionmaker(engine)
    async with Session() as session:
        count = (await session.execute(sa.select(Image.likes_count).where(Image.id == image_id))).scalar_one_or_none()
        liked = False
        if user_id and count is not None:
            liked = (
                await session.execute(
                    sa.select(ImageLike.id)
                    .where(ImageLike.user_id == user_id, ImageLike.image_id == image_id)
                    .limit(1)
                )
            ).first() is not None
    return LikeStatus(likes_count=int(count or 0), is_liked=liked)


async def get_like_statuses(
    engine: AsyncEngine,
    *,
    image_ids: Sequence[str],
    user_id: str | None,
) -> dict[str, LikeStatus]:
    ids = list(dict.fromkeys(str(i) for i in image_ids if str(i)))
    out = {i: LikeStatus(likes_count=0, is_liked=False) for i in ids}
    if not ids:
        return out

    Session = create_sessionmaker(engine)
    async with Session() as session:
        counts = dict(
            (await session.execute(sa.select(Image.id, Image.likes_count).where(Image.id.in_(ids)))).all()
        )
        liked_ids: set[str] = set()
        if user_id:
            liked_ids = {
                str(r)
                for r in (
                    await session.execute(
                        sa.select(ImageLike.image_id).where(ImageLike.user_id == user_id, ImageLike.image_id.in_(ids))
                    )
                ).scalars()
            }

    for image_id, count in counts.items():
        out[str(image_id)] = LikeStatus(likes_count=int(count or 0), is_liked=str(image_id) in liked_ids)
    return out
