from __future__ import annotations

from typing import Any

from starlette.datastructures import UploadFile

from snapslock.core.errors import ApiError, ErrorCode
from snapslock.db.models.images import Image
from snapslock.db.tags_get import TagItem


def image_to_json(image: Image, tags: list[TagItem] | None = None) -> dict[str, Any]:
    return {
        "id": str(image.id),
        "title": image.title,
        "description": image.description,
        "public_id": image.public_id,
        "secure_url": image.secure_url,
        "width": image.width,
        "height": image.height,
        "format": image.format,
        "user_id": image.user_id,
        "likes_count": int(image.likes_count or 0),
        "created_at": image.created_at,
        "updated_at": image.updated_at,
        "tags": [t.to_json() for t in tags or []],
    }


async def read_image_upload(file_obj: Any, *, max_bytes: int, field: str = "file") -> tuple[bytes, str, str]:
    """Returns ``(content, filename, content_type)`` for an ``image/*`` multipart part."""
    if not isinstance(file_obj, UploadFile):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message=f"Missing {field}", status_code=400)

    content_type = (file_obj.content_type or "").strip().lower()
    if not content_type.startswith("image/"):
        raise ApiError(
            code=ErrorCode.INVALID_UPLOAD_TYPE,
            message="Unsupported upload type",
            status_code=400,
            details={"content_type": content_type},
        )

    raw = await file_obj.read(int(max_bytes) + 1)
    if len(raw) > int(max_bytes):
        raise ApiError(
            code=ErrorCode.PAYLOAD_TOO_LARGE,
            message="Payload too large",
            status_code=413,
            details={"max_bytes": int(max_bytes)},
        )
    if not raw:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message=f"Empty {field}", status_code=400)

    return raw, (file_obj.filename or "upload").strip() or "upload", content_type
