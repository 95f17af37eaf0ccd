from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from snapslock.core.logging import get_logger
from snapslock.core.tag_filter import PageWindow, normalize_tag_keys, tally_full_matches
from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag
from snapslock.db.tags_get import TagItem, get_tags_for_images

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ImagePage:
    images: list[Image]
    tags_by_image: dict[str, list[TagItem]] = field(default_factory=dict)
    total: int = 0
    has_more: bool = False


EMPTY_PAGE = ImagePage(images=[], tags_by_image={}, total=0, has_more=False)


async def resolve_tag_ids(session: AsyncSession, *, slugs: Sequence[str]) -> dict[str, int]:
    if not slugs:
        return {}
    rows = (await session.execute(select(Tag.slug, Tag.id).where(Tag.slug.in_(list(slugs))))).all()
    return {str(slug): int(tag_id) for slug, tag_id in rows}


async def match_images_with_all_tags(session: AsyncSession, *, tag_ids: Sequence[int]) -> set[str]:
    ids = sorted({int(t) for t in tag_ids})
    if not ids:
        return set()
    rows = (
        await session.execute(select(ImageTag.image_id, ImageTag.tag_id).where(ImageTag.tag_id.in_(ids)))
    ).all()
    return tally_full_matches(((str(r[0]), int(r[1])) for r in rows), ids)


async def list_images(
    session: AsyncSession,
    *,
    tags: Sequence[str] | None,
    page: int,
    page_size: int,
) -> ImagePage:
    window = PageWindow(page=int(page), page_size=int(page_size))
    slugs = normalize_tag_keys(tags)

    clauses: list[object] = []
    if slugs:
        resolved = await resolve_tag_ids(session, slugs=slugs)
        if len(resolved) != len(slugs):
            missing = [s for s in slugs if s not in resolved]
            log.info("image_list_unknown_tags tags=%s", ",".join(missing))
            return EMPTY_PAGE

        matched = await match_images_with_all_tags(session, tag_ids=list(resolved.values()))
        if not matched:
            return EMPTY_PAGE
        clauses.append(Image.id.in_(sorted(matched)))

    total = int((await session.execute(select(func.count()).select_from(Image).where(*clauses))).scalar_one())
    if total == 0 or window.offset >= total:
        return ImagePage(images=[], tags_by_image={}, total=total, has_more=False)

    stmt = (
        select(Image)
        .where(*clauses)
        .order_by(Image.created_at.desc(), Image.id.desc())
        .offset(window.offset)
        .limit(window.limit)
    )
    images = list((await session.execute(stmt)).scalars().all())
    tags_by_image = await get_tags_for_images(session, image_ids=[img.id for img in images])

    return ImagePage(
        images=images,
        tags_by_image=tags_by_image,
        total=total,
        has_more=window.has_more(total),
    )
