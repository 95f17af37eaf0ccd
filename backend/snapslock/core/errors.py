from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_UPLOAD_TYPE = "INVALID_UPLOAD_TYPE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    STORE_ERROR = "STORE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


UNKNOWN_REQUEST_ID = "req_unknown"

_DEFAULT_MESSAGE_BY_CODE: dict[ErrorCode, str] = {
    ErrorCode.BAD_REQUEST: "Bad request",
    ErrorCode.UNAUTHORIZED: "Authentication required",
    ErrorCode.NOT_FOUND: "Not found",
    ErrorCode.INVALID_UPLOAD_TYPE: "Unsupported upload type",
    ErrorCode.PAYLOAD_TOO_LARGE: "Payload too large",
    ErrorCode.UPSTREAM_ERROR: "Upstream service failed",
    ErrorCode.STORE_ERROR: "Data store request failed",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE_BY_CODE.get(code, "Request failed")


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    code: ErrorCode
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


def _coerce_request_id(request_id: str | None) -> str:
    request_id = (request_id or "").strip()
    return request_id if request_id else UNKNOWN_REQUEST_ID


def _request_id_from_request(request: Any | None) -> str | None:
    if request is None:
        return None
    request_id = getattr(getattr(request, "state", None), "request_id", None)
    if request_id:
        return str(request_id)
    header = request.headers.get("X-Request-Id")
    return header.strip() if header else None


def error_body(
    *,
    code: ErrorCode,
    message: str,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "ok": False,
        "error": str(message or "").strip() or default_message(code),
        "code": code.value,
        "request_id": _coerce_request_id(request_id),
        "details": details or {},
    }


def json_error_response(
    *,
    code: ErrorCode,
    message: str,
    status_code: int,
    request: Any | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Any:
    if request_id is None:
        request_id = _request_id_from_request(request)
    from fastapi.responses import JSONResponse

    resp = JSONResponse(
        status_code=status_code,
        content=error_body(code=code, message=message, request_id=request_id, details=details),
    )
    resp.headers["X-Request-Id"] = _coerce_request_id(request_id)
    return resp
