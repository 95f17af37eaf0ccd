from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snapslock.api.auth.deps import get_cdn_client, get_identity_client, require_session_user, upstream_api_error
from snapslock.api.public.payloads import read_image_upload
from snapslock.cdn.client import CdnError
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.request_id import get_or_create_request_id
from snapslock.core.security import SessionUser
from snapslock.core.time import iso_utc_ms
from snapslock.identity.client import IdentityError, IdentityUser

log = get_logger(__name__)

router = APIRouter()

AVATAR_MAX_BYTES = 5 * 1024 * 1024


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str | None = Field(default=None, min_length=3, max_length=30)
    full_name: str | None = Field(default=None, max_length=60)
    display_name: str | None = Field(default=None, min_length=2, max_length=50)


def _require_access_token(user: SessionUser) -> str:
    if not user.access_token:
        raise ApiError(code=ErrorCode.UNAUTHORIZED, message="Session has no provider token", status_code=401)
    return user.access_token


def _identity_failure(exc: IdentityError, *, action: str) -> ApiError:
    if exc.status_code in {401, 403}:
        return ApiError(code=ErrorCode.UNAUTHORIZED, message="Session expired", status_code=401)
    if exc.is_rejection:
        return ApiError(code=ErrorCode.BAD_REQUEST, message=str(exc) or f"{action} rejected", status_code=400)
    return upstream_api_error("identity", exc, action=action)


def _profile_payload(request: Request, user: IdentityUser) -> dict[str, Any]:
    return {"ok": True, "user": user.to_json(), "request_id": get_or_create_request_id(request)}


@router.get("/api/profile")
async def get_profile(request: Request, session_user: SessionUser = Depends(require_session_user)) -> dict[str, Any]:
    access_token = _require_access_token(session_user)
    try:
        user = await get_identity_client(request).get_user(access_token=access_token)
    except IdentityError as exc:
        raise _identity_failure(exc, action="Profile lookup") from exc
    return _profile_payload(request, user)


@router.patch("/api/profile")
async def update_profile(request: Request, session_user: SessionUser = Depends(require_session_user)) -> dict[str, Any]:
    try:
        data = await request.json()
    except ValueError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400) from exc
    if not isinstance(data, dict):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400)
    try:
        body = ProfileUpdateRequest(**data)
    except ValidationError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid profile data", status_code=400) from exc

    changes: dict[str, Any] = body.model_dump(exclude_none=True)
    if not changes:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="No profile fields provided", status_code=400)
    changes["updated_at"] = iso_utc_ms()

    access_token = _require_access_token(session_user)
    try:
        user = await get_identity_client(request).update_user_metadata(access_token=access_token, data=changes)
    except IdentityError as exc:
        raise _identity_failure(exc, action="Profile update") from exc

    log.info("profile_updated user=%s fields=%s", session_user.id, ",".join(sorted(k for k in changes if k != "updated_at")))
    return _profile_payload(request, user)


@router.post("/api/profile/avatar")
async def upload_avatar(request: Request, session_user: SessionUser = Depends(require_session_user)) -> dict[str, Any]:
    content_type = (request.headers.get("content-type") or "").lower()
    if not content_type.startswith("multipart/form-data"):
        raise ApiError(code=ErrorCode.INVALID_UPLOAD_TYPE, message="Unsupported content type", status_code=400)

    access_token = _require_access_token(session_user)
    form = await request.form()
    raw, filename, file_type = await read_image_upload(form.get("avatar"), max_bytes=AVATAR_MAX_BYTES, field="avatar")

    try:
        asset = await get_cdn_client(request).upload_image(
            content=raw,
            filename=filename,
            content_type=file_type,
            folder=f"avatars/{session_user.id}",
        )
    except CdnError as exc:
        raise upstream_api_error("cdn", exc, action="Avatar upload") from exc

    try:
        user = await get_identity_client(request).update_user_metadata(
            access_token=access_token,
            data={"avatar_url": asset.secure_url, "updated_at": iso_utc_ms()},
        )
    except IdentityError as exc:
        raise _identity_failure(exc, action="Avatar update") from exc

    log.info("avatar_updated user=%s public_id=%s", session_user.id, asset.public_id)
    return _profile_payload(request, user)
