from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.tags import Tag
from snapslock.db.tags_get import TagItem


async def list_tags(session: AsyncSession) -> list[TagItem]:
    usage = func.count(ImageTag.image_id).label("usage_count")
    stmt = (
        select(Tag.id, Tag.name, Tag.slug, Tag.created_at, usage)
        .outerjoin(ImageTag, ImageTag.tag_id == Tag.id)
        .group_by(Tag.id)
        .order_by(Tag.name.asc(), Tag.id.asc())
    )
    rows = (await session.execute(stmt)).all()
    return [
        TagItem(
            id=int(row[0]),
            name=str(row[1]),
            slug=str(row[2]),
            created_at=str(row[3]),
            usage_count=int(row[4] or 0),
        )
        for row in rows
    ]
