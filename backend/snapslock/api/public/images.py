from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from snapslock.api.auth.deps import get_cdn_client, get_session_user, upstream_api_error
from snapslock.api.public.payloads import image_to_json, read_image_upload
from snapslock.cdn.client import CdnError
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import observe_upload
from snapslock.core.request_id import get_or_create_request_id, set_request_id_header, set_request_id_on_state
from snapslock.core.tag_filter import normalize_tag_keys
from snapslock.db.images_create import NewImage, create_image_with_tags
from snapslock.db.images_get import get_image_by_id
from snapslock.db.images_list import list_images as db_list_images
from snapslock.db.session import create_sessionmaker, with_sqlite_busy_retry
from snapslock.db.tags_get import get_tags_for_images

log = get_logger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100
MAX_TAG_FILTERS = 20
MAX_UPLOAD_TAGS = 30
MAX_TITLE_LEN = 200
MAX_DESCRIPTION_LEN = 2000


@router.get("/api/images")
async def list_images(
    request: Request,
    tag: list[str] | None = Query(default=None),
    page: int = 1,
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, alias="pageSize"),
) -> Any:
    if page < 1:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported page", status_code=400)
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported pageSize", status_code=400)

    tags = normalize_tag_keys(tag)
    if len(tags) > MAX_TAG_FILTERS:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Too many tag filters", status_code=400)

    engine = request.app.state.engine
    Session = create_sessionmaker(engine)
    async with Session() as session:
        result = await db_list_images(session, tags=tags, page=page, page_size=page_size)

    rid = get_or_create_request_id(request)
    set_request_id_on_state(request, rid)

    resp = JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "images": [image_to_json(img, result.tags_by_image.get(str(img.id))) for img in result.images],
            "hasMore": bool(result.has_more),
            "total": int(result.total),
            "page": page,
            "pageSize": page_size,
            "request_id": rid,
        },
    )
    set_request_id_header(resp, rid)
    return resp


def _parse_tags_field(raw: Any) -> list[str]:
    if raw is None:
        return []
    text = str(raw).strip()
    if not text:
        return []
    try:
        value = json.loads(text)
    except ValueError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="tags must be a JSON array of strings", status_code=400) from exc
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="tags must be a JSON array of strings", status_code=400)
    if len(value) > MAX_UPLOAD_TAGS:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Too many tags", status_code=400)
    return value


@router.post("/api/images")
async def upload_image(request: Request) -> Any:
    content_type = (request.headers.get("content-type") or "").lower()
    if not content_type.startswith("multipart/form-data"):
        observe_upload("bad_request")
        raise ApiError(code=ErrorCode.INVALID_UPLOAD_TYPE, message="Unsupported content type", status_code=400)

    settings = request.app.state.settings
    form = await request.form()
    try:
        title = str(form.get("title") or "").strip()
        if not title:
            raise ApiError(code=ErrorCode.BAD_REQUEST, message="Missing title", status_code=400)
        if len(title) > MAX_TITLE_LEN:
            raise ApiError(code=ErrorCode.BAD_REQUEST, message="Title too long", status_code=400)
        description = str(form.get("description") or "").strip() or None
        if description is not None and len(description) > MAX_DESCRIPTION_LEN:
            raise ApiError(code=ErrorCode.BAD_REQUEST, message="Description too long", status_code=400)
        tag_names = _parse_tags_field(form.get("tags"))

        raw, filename, file_type = await read_image_upload(form.get("file"), max_bytes=settings.upload_max_bytes)
    except ApiError:
        observe_upload("bad_request")
        raise

    cdn = get_cdn_client(request)
    try:
        asset = await cdn.upload_image(
            content=raw,
            filename=filename,
            content_type=file_type,
            folder=settings.cdn_upload_folder,
        )
    except CdnError as exc:
        observe_upload("upstream_error")
        raise upstream_api_error("cdn", exc, action="Image upload") from exc

    user = get_session_user(request)
    new_image = NewImage(
        title=title,
        description=description,
        public_id=asset.public_id,
        secure_url=asset.secure_url,
        width=asset.width,
        height=asset.height,
        format=asset.format,
        user_id=user.id if user is not None else None,
    )

    Session = create_sessionmaker(request.app.state.engine)

    async def _op() -> dict[str, Any]:
        async with Session() as session:
            image, tags = await create_image_with_tags(session, image=new_image, tag_names=tag_names)
            return image_to_json(image, tags)

    try:
        payload = await with_sqlite_busy_retry(_op)
    except Exception:
        observe_upload("error")
        log.error("image_insert_failed public_id=%s", asset.public_id)
        raise

    observe_upload("ok")
    log.info("image_uploaded id=%s tags=%s user=%s", payload["id"], len(payload["tags"]), new_image.user_id or "-")

    rid = get_or_create_request_id(request)
    return {"ok": True, "success": True, "image": payload, "request_id": rid}


@router.get("/api/images/{image_id}")
async def get_image(request: Request, image_id: str) -> Any:
    image_id = (image_id or "").strip()
    if not image_id or len(image_id) > 64:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported image_id", status_code=400)

    Session = create_sessionmaker(request.app.state.engine)
    async with Session() as session:
        image = await get_image_by_id(session, image_id=image_id)
        if image is None:
            raise ApiError(code=ErrorCode.NOT_FOUND, message="Image not found", status_code=404)
        tags = await get_tags_for_images(session, image_ids=[image.id])

    rid = get_or_create_request_id(request)
    set_request_id_on_state(request, rid)
    resp = JSONResponse(
        status_code=200,
        content={"ok": True, "image": image_to_json(image, tags.get(str(image.id))), "request_id": rid},
    )
    set_request_id_header(resp, rid)
    return resp
