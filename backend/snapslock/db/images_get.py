from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from snapslock.db.models.images import Image


async def get_image_by_id(session: AsyncSession, *, image_id: str) -> Image | None:
    stmt = select(Image).where(Image.id == str(image_id)).limit(1)
    return (await session.execute(stmt)).scalars().first()
