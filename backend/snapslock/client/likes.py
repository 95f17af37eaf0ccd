from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from snapslock.client.api import LIKE_STATUS_TIMEOUT_S, ApiClientError, LikeSnapshot, SnapslockApi
from snapslock.core.logging import get_logger

log = get_logger(__name__)

RECONCILE_DELAY_S = 0.5


class LikeTracker:
    """Local like state as a hint over the server's authoritative state.

    ``toggle`` flips the local state before the request resolves, then
    re-reads the server after ``reconcile_delay_s``; the last read wins. A
    failed toggle is corrected by re-reading the server, not by undoing the
    local flip.
    """

    def __init__(
        self,
        api: SnapslockApi,
        *,
        reconcile_delay_s: float = RECONCILE_DELAY_S,
        status_timeout_s: float = LIKE_STATUS_TIMEOUT_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.reconcile_delay_s = float(reconcile_delay_s)
        self.status_timeout_s = float(status_timeout_s)
        self._sleep = sleep
        self.state: dict[str, LikeSnapshot] = {}
        self._reconcilers: set[asyncio.Task[None]] = set()

    def get(self, image_id: str) -> LikeSnapshot | None:
        return self.state.get(image_id)

    async def refresh(self, image_id: str) -> LikeSnapshot:
        snapshot = await self.api.get_like_status(image_id, timeout_s=self.status_timeout_s)
        self.state[image_id] = snapshot
        return snapshot

    async def refresh_many(self, image_ids: Iterable[str]) -> dict[str, LikeSnapshot]:
        snapshots = await self.api.get_batch_likes(image_ids)
        self.state.update(snapshots)
        return snapshots

    async def toggle(self, image_id: str) -> LikeSnapshot:
        previous = self.state.get(image_id) or LikeSnapshot(count=0, liked=False)
        if previous.liked:
            optimistic = LikeSnapshot(count=max(0, previous.count - 1), liked=False)
        else:
            optimistic = LikeSnapshot(count=previous.count + 1, liked=True)
        self.state[image_id] = optimistic

        try:
            data = await self.api.toggle_like(image_id)
        except ApiClientError as exc:
            log.warning("like_toggle_failed image=%s status=%s", image_id, exc.status_code)
            await self._revert_from_server(image_id, previous)
            raise

        confirmed = LikeSnapshot(
            count=int(data.get("likes_count", optimistic.count) or 0),
            liked=bool(data.get("isLiked", optimistic.liked)),
        )
        self.state[image_id] = confirmed
        self._schedule_reconcile(image_id)
        return confirmed

    async def wait_idle(self) -> None:
        while self._reconcilers:
            await asyncio.gather(*list(self._reconcilers))

    async def _revert_from_server(self, image_id: str, previous: LikeSnapshot) -> None:
        try:
            await self.refresh(image_id)
        except ApiClientError as exc:
            log.warning("like_status_refetch_failed image=%s err=%s", image_id, str(exc))
            self.state[image_id] = previous

    def _schedule_reconcile(self, image_id: str) -> None:
        task = asyncio.create_task(self._reconcile(image_id))
        self._reconcilers.add(task)
        task.add_done_callback(self._reconcilers.discard)

    async def _reconcile(self, image_id: str) -> None:
        await self._sleep(self.reconcile_delay_s)
        try:
            await self.refresh(image_id)
        except ApiClientError as exc:
            log.info("like_reconcile_skipped image=%s err=%s", image_id, str(exc))
