from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from snapslock.client.api import ApiClientError, ImagePageResult, SnapslockApi
from snapslock.core.logging import get_logger
from snapslock.core.tag_filter import normalize_tag_keys

log = get_logger(__name__)


class ImageFeed:
    """Accumulating, de-duplicated image list driven by tag selection and "load more" triggers.

    Page 1 replaces ``images``; later pages append only unseen ids. ``has_more``
    always mirrors the server's flag. Every fetch is stamped with the current
    generation; ``set_tags`` bumps the generation, so responses that arrive for
    an older tag selection are dropped instead of overwriting fresh results.
    """

    def __init__(
        self,
        api: SnapslockApi,
        *,
        tags: Iterable[str] = (),
        page_size: int = 12,
        initial: ImagePageResult | None = None,
    ) -> None:
        self.api = api
        self.page_size = int(page_size)
        self.tags: frozenset[str] = frozenset(normalize_tag_keys(tags))

        self.images: list[dict[str, Any]] = []
        self.page = 1
        self.has_more = True
        self.is_loading = False
        self.is_fetching_more = False
        self.error: ApiClientError | None = None

        self._generation = 0
        self._seeded = False
        if initial is not None and not self.tags:
            self.images = list(initial.images)
            self.has_more = bool(initial.has_more)
            self._seeded = True

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def busy(self) -> bool:
        return self.is_loading or self.is_fetching_more

    async def start(self) -> None:
        if self._seeded:
            return
        await self._reset_and_fetch()

    async def set_tags(self, tags: Iterable[str]) -> None:
        new_tags = frozenset(normalize_tag_keys(tags))
        if new_tags == self.tags:
            return
        self.tags = new_tags
        self._seeded = False
        await self._reset_and_fetch()

    async def load_more(self) -> bool:
        """Fetches the next page; returns False when the trigger was ignored."""
        if self.busy or not self.has_more:
            return False
        if self.error is not None and not self.images:
            # First page never arrived.
            self.page = 1
            await self._fetch(1, self._generation)
            return True
        self.page += 1
        await self._fetch(self.page, self._generation)
        return True

    async def _reset_and_fetch(self) -> None:
        self._generation += 1
        self.images = []
        self.page = 1
        self.has_more = True
        self.error = None
        self.is_fetching_more = False
        await self._fetch(1, self._generation)

    async def _fetch(self, page: int, generation: int) -> None:
        first = page == 1
        if first:
            self.is_loading = True
        else:
            self.is_fetching_more = True

        tags = sorted(self.tags)
        try:
            result = await self.api.list_images(tags=tags, page=page, page_size=self.page_size)
        except ApiClientError as exc:
            if generation != self._generation:
                log.info("feed_stale_error_dropped generation=%s current=%s", generation, self._generation)
                return
            self.error = exc
            if not first:
                self.page = page - 1
            log.warning("feed_fetch_failed page=%s tags=%s err=%s", page, ",".join(tags), str(exc))
            self._clear_flags(first)
            return

        if generation != self._generation:
            log.info("feed_stale_response_dropped generation=%s current=%s page=%s", generation, self._generation, page)
            return

        if first:
            self.images = list(result.images)
        else:
            seen = {str(img.get("id")) for img in self.images}
            for img in result.images:
                image_id = str(img.get("id"))
                if image_id in seen:
                    continue
                seen.add(image_id)
                self.images.append(img)

        self.has_more = bool(result.has_more)
        self.error = None
        self._clear_flags(first)

    def _clear_flags(self, first: bool) -> None:
        if first:
            self.is_loading = False
        else:
            self.is_fetching_more = False
