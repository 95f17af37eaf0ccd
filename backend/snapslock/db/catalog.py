from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from snapslock.db.models.image_likes import ImageLike
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag


@dataclass(frozen=True, slots=True)
class SitemapImage:
    id: str
    updated_at: str


async def count_catalog(engine: AsyncEngine) -> dict[str, int]:
    async with engine.connect() as conn:
        images = (await conn.execute(select(func.count()).select_from(Image))).scalar_one()
        tags = (await conn.execute(select(func.count()).select_from(Tag))).scalar_one()
        likes = (await conn.execute(select(func.count()).select_from(ImageLike))).scalar_one()
    return {"images": int(images or 0), "tags": int(tags or 0), "likes": int(likes or 0)}


async def list_sitemap_images(session: AsyncSession, *, limit: int = 45_000) -> list[SitemapImage]:
    stmt = select(Image.id, Image.updated_at).order_by(Image.created_at.desc(), Image.id.desc()).limit(int(limit))
    return [SitemapImage(id=str(r[0]), updated_at=str(r[1])) for r in (await session.execute(stmt)).all()]


async def list_sitemap_tag_slugs(session: AsyncSession) -> list[str]:
    rows = (await session.execute(select(Tag.slug).order_by(Tag.slug.asc()))).scalars().all()
    return [str(s) for s in rows]
