from __future__ import annotations

import re
from collections import Counter
from collections.abc import Collection, Iterable
from dataclasses import dataclass

_WHITESPACE_RE = re.compile(r"\s+")


def slugify_tag(name: str) -> str:
    """``"Sunset  Beach"`` -> ``"sunset-beach"``; the slug is the tag's lookup key."""
    return _WHITESPACE_RE.sub("-", (name or "").strip().lower())


def normalize_tag_keys(values: Iterable[str] | None) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for raw in values or []:
        slug = slugify_tag(str(raw or ""))
        if not slug or slug in seen:
            continue
        seen.add(slug)
        out.append(slug)
    return out


def tally_full_matches(rows: Iterable[tuple[str, int]], required_tag_ids: Collection[int]) -> set[str]:
    """Image ids whose association rows cover every required tag.

    ``rows`` are ``(image_id, tag_id)`` pairs. Rows for tags outside the
    required set and repeated pairs are ignored, so an image is counted at
    most once per required tag.
    """
    required = {int(t) for t in required_tag_ids}
    if not required:
        return set()

    seen_pairs: set[tuple[str, int]] = set()
    tally: Counter[str] = Counter()
    for image_id, tag_id in rows:
        pair = (str(image_id), int(tag_id))
        if pair[1] not in required or pair in seen_pairs:
            continue
        seen_pairs.add(pair)
        tally[pair[0]] += 1

    need = len(required)
    return {image_id for image_id, count in tally.items() if count == need}


@dataclass(frozen=True, slots=True)
class PageWindow:
    page: int
    page_size: int

    def __post_init__(self) -> None:
        if int(self.page) < 1:
            raise ValueError("page must be >= 1")
        if int(self.page_size) < 1:
            raise ValueError("page_size must be >= 1")

    @property
    def offset(self) -> int:
        return (int(self.page) - 1) * int(self.page_size)

    @property
    def limit(self) -> int:
        return int(self.page_size)

    def has_more(self, total: int) -> bool:
        return self.offset + self.page_size < int(total)
