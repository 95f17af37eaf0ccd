from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from snapslock.api.auth.deps import get_cdn_client, upstream_api_error
from snapslock.cdn.client import CdnError, normalize_folder
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.request_id import get_or_create_request_id, set_request_id_header

router = APIRouter()


@router.get("/api/cloudinary")
async def list_folder(request: Request, folder: str | None = None) -> Any:
    raw = (folder or "").strip() or request.app.state.settings.cdn_upload_folder
    try:
        folder_norm = normalize_folder(raw)
    except ValueError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Unsupported folder", status_code=400) from exc

    try:
        resources = await get_cdn_client(request).search_folder(folder_norm)
    except CdnError as exc:
        raise upstream_api_error("cdn", exc, action="Folder listing") from exc

    rid = get_or_create_request_id(request)
    resp = JSONResponse(status_code=200, content=[r.to_json() for r in resources])
    set_request_id_header(resp, rid)
    return resp
