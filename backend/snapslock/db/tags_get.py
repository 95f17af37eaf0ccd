from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.tags import Tag


@dataclass(frozen=True, slots=True)
class TagItem:
    id: int
    name: str
    slug: str
    created_at: str
    usage_count: int | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "created_at": self.created_at,
        }
        if self.usage_count is not None:
            out["usage_count"] = self.usage_count
        return out


def tag_item_from_row(tag: Tag) -> TagItem:
    return TagItem(id=int(tag.id), name=str(tag.name), slug=str(tag.slug), created_at=str(tag.created_at))


async def get_tags_for_images(session: AsyncSession, *, image_ids: Sequence[str]) -> dict[str, list[TagItem]]:
    ids = sorted({str(i) for i in image_ids})
    out: dict[str, list[TagItem]] = {i: [] for i in ids}
    if not ids:
        return out

    stmt = (
        select(ImageTag.image_id, Tag)
        .join(Tag, Tag.id == ImageTag.tag_id)
        .where(ImageTag.image_id.in_(ids))
        .order_by(Tag.name.asc(), Tag.id.asc())
    )
    for image_id, tag in (await session.execute(stmt)).all():
        out[str(image_id)].append(tag_item_from_row(tag))
    return out
