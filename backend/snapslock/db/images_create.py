from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from snapslock.core.tag_filter import slugify_tag
from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag
from snapslock.db.tags_get import TagItem, tag_item_from_row


@dataclass(frozen=True, slots=True)
class NewImage:
    title: str
    description: str | None
    public_id: str
    secure_url: str
    width: int | None
    height: int | None
    format: str | None
    user_id: str | None


def unique_tag_names(names: Sequence[str]) -> list[tuple[str, str]]:
    """``(display_name, slug)`` pairs, first spelling wins per slug."""
    out: list[tuple[str, str]] = []
    seen: set[str] = set()
    for raw in names:
        name = str(raw or "").strip()
        slug = slugify_tag(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        out.append((name, slug))
    return out


async def ensure_tags(session: AsyncSession, *, names: Sequence[str]) -> list[Tag]:
    pairs = unique_tag_names(names)
    if not pairs:
        return []

    # Concurrent uploads may create the same slug; the unique index decides.
    stmt = sqlite_insert(Tag).values([{"name": name, "slug": slug} for name, slug in pairs])
    await session.execute(stmt.on_conflict_do_nothing(index_elements=["slug"]))

    slugs = [slug for _, slug in pairs]
    rows = (await session.execute(sa.select(Tag).where(Tag.slug.in_(slugs)))).scalars().all()
    by_slug = {t.slug: t for t in rows}
    return [by_slug[s] for s in slugs if s in by_slug]


async def create_image_with_tags(
    session: AsyncSession,
    *,
    image: NewImage,
    tag_names: Sequence[str],
) -> tuple[Image, list[TagItem]]:
    row = Image(
        title=image.title,
        description=image.description,
        public_id=image.public_id,
        secure_url=image.secure_url,
        width=image.width,
        height=image.height,
        format=image.format,
        user_id=image.user_id,
    )
    session.add(row)
    await session.flush()

    tags = await ensure_tags(session, names=tag_names)
    if tags:
        stmt = sqlite_insert(ImageTag).values([{"image_id": row.id, "tag_id": int(t.id)} for t in tags])
        await session.execute(stmt.on_conflict_do_nothing(index_elements=["image_id", "tag_id"]))

    await session.commit()
    await session.refresh(row)
    return row, sorted((tag_item_from_row(t) for t in tags), key=lambda t: (t.name, t.id))
