from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

DEFAULT_TIMEOUT_S = 15.0
LIKE_STATUS_TIMEOUT_S = 5.0


class ApiClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


@dataclass(frozen=True, slots=True)
class ImagePageResult:
    images: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = False
    total: int = 0


@dataclass(frozen=True, slots=True)
class LikeSnapshot:
    count: int
    liked: bool


class SnapslockApi:
    """Thin async wrapper over the HTTP surface; one ``httpx.AsyncClient`` per instance."""

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        cookies: dict[str, str] | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            transport=transport,
            cookies=cookies,
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )

    async def __aenter__(self) -> "SnapslockApi":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ApiClientError(f"{method} {path} timed out", code="TIMEOUT") from exc
        except httpx.HTTPError as exc:
            raise ApiClientError(f"{method} {path} failed: {type(exc).__name__}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            message = f"{method} {path} failed"
            code = None
            if isinstance(data, dict):
                message = str(data.get("error") or message)
                code = str(data.get("code")) if data.get("code") else None
            raise ApiClientError(message, status_code=resp.status_code, code=code)
        if data is None:
            raise ApiClientError(f"{method} {path} returned non-JSON", status_code=resp.status_code)
        return data

    async def list_images(self, *, tags: Iterable[str] = (), page: int = 1, page_size: int = 12) -> ImagePageResult:
        params: list[tuple[str, str | int]] = [("tag", t) for t in tags]
        params.extend([("page", int(page)), ("pageSize", int(page_size))])
        data = await self._request("GET", "/api/images", params=params)
        images = data.get("images") if isinstance(data, dict) else None
        if not isinstance(images, list):
            raise ApiClientError("Invalid image list response")
        return ImagePageResult(
            images=[img for img in images if isinstance(img, dict)],
            has_more=bool(data.get("hasMore")),
            total=int(data.get("total") or 0),
        )

    async def list_tags(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/tags")
        return [t for t in data.get("tags") or [] if isinstance(t, dict)]

    async def get_like_status(self, image_id: str, *, timeout_s: float = LIKE_STATUS_TIMEOUT_S) -> LikeSnapshot:
        data = await self._request(
            "GET",
            "/api/images/likes",
            params={"imageId": image_id},
            timeout=httpx.Timeout(timeout_s),
        )
        return LikeSnapshot(count=int(data.get("likes_count") or 0), liked=bool(data.get("is_liked_by_user")))

    async def get_batch_likes(self, image_ids: Iterable[str]) -> dict[str, LikeSnapshot]:
        ids = [i for i in dict.fromkeys(image_ids) if i]
        if not ids:
            return {}
        data = await self._request("GET", "/api/images/likes/batch", params={"ids": ",".join(ids)})
        likes = data.get("likes") if isinstance(data, dict) else None
        if not isinstance(likes, dict):
            raise ApiClientError("Invalid batch likes response")
        return {
            str(k): LikeSnapshot(count=int(v.get("count") or 0), liked=bool(v.get("isLiked")))
            for k, v in likes.items()
            if isinstance(v, dict)
        }

    async def toggle_like(self, image_id: str) -> dict[str, Any]:
        return await self._request("POST", "/api/images/likes", json={"imageId": image_id})
