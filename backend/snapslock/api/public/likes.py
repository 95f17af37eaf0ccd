from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field, ValidationError

from snapslock.api.auth.deps import get_session_user, require_session_user
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import observe_like_toggle
from snapslock.core.request_id import get_or_create_request_id
from snapslock.core.security import SessionUser
from snapslock.db.likes import get_like_status, get_like_statuses, toggle_like

log = get_logger(__name__)

router = APIRouter()

MAX_BATCH_IDS = 100
MAX_IMAGE_ID_LEN = 64


class LikeToggleRequest(BaseModel):
    imageId: str = Field(min_length=1, max_length=MAX_IMAGE_ID_LEN)


def _clean_image_id(raw: str | None) -> str:
    image_id = (raw or "").strip()
    if not image_id:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Missing imageId", status_code=400)
    if len(image_id) > MAX_IMAGE_ID_LEN:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported imageId", status_code=400)
    return image_id


def parse_batch_ids(raw: str | None) -> list[str]:
    ids = list(dict.fromkeys(part.strip() for part in (raw or "").split(",") if part.strip()))
    if not ids:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Missing ids", status_code=400)
    if len(ids) > MAX_BATCH_IDS:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Too many ids", status_code=400)
    for image_id in ids:
        _clean_image_id(image_id)
    return ids


@router.get("/api/images/likes")
async def like_status(request: Request, image_id: str | None = Query(default=None, alias="imageId")) -> dict[str, Any]:
    image_id = _clean_image_id(image_id)
    user = get_session_user(request)
    status = await get_like_status(
        request.app.state.engine,
        image_id=image_id,
        user_id=user.id if user is not None else None,
    )
    return {
        "ok": True,
        "likes_count": status.likes_count,
        "is_liked_by_user": status.is_liked,
        "request_id": get_or_create_request_id(request),
    }


@router.post("/api/images/likes")
async def like_toggle(request: Request, user: SessionUser = Depends(require_session_user)) -> dict[str, Any]:
    try:
        data = await request.json()
    except ValueError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400) from exc
    if not isinstance(data, dict):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400)
    try:
        body = LikeToggleRequest(**data)
    except ValidationError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Missing imageId", status_code=400) from exc

    image_id = _clean_image_id(body.imageId)
    result = await toggle_like(request.app.state.engine, user_id=user.id, image_id=image_id)
    if result is None:
        raise ApiError(code=ErrorCode.NOT_FOUND, message="Image not found", status_code=404)

    observe_like_toggle(result.action)
    log.info("like_toggled image=%s user=%s action=%s count=%s", image_id, user.id, result.action, result.likes_count)
    return {
        "ok": True,
        "success": True,
        "action": result.action,
        "isLiked": result.is_liked,
        "likes_count": result.likes_count,
        "request_id": get_or_create_request_id(request),
    }


@router.get("/api/images/likes/batch")
async def like_batch(request: Request, ids: str | None = None) -> dict[str, Any]:
    image_ids = parse_batch_ids(ids)
    user = get_session_user(request)
    statuses = await get_like_statuses(
        request.app.state.engine,
        image_ids=image_ids,
        user_id=user.id if user is not None else None,
    )
    return {
        "ok": True,
        "likes": {
            image_id: {"isLiked": statuses[image_id].is_liked, "count": statuses[image_id].likes_count}
            for image_id in image_ids
        },
        "request_id": get_or_create_request_id(request),
    }
