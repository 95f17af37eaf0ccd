from __future__ import annotations

from typing import Any

from fastapi import Request

from snapslock.cdn.client import CdnClient, CdnError
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import observe_upstream_error
from snapslock.core.security import SessionUser, create_session_token, decode_session_token
from snapslock.identity.client import IdentityClient, IdentityError, IdentitySession

log = get_logger(__name__)


def get_cdn_client(request: Request) -> CdnClient:
    return request.app.state.cdn_client


def get_identity_client(request: Request) -> IdentityClient:
    return request.app.state.identity_client


def get_session_user(request: Request) -> SessionUser | None:
    settings = request.app.state.settings
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    try:
        return decode_session_token(
            token,
            secret_key=settings.secret_key,
            encryptor=request.app.state.field_encryptor,
        )
    except ValueError as exc:
        log.info("session_cookie_rejected reason=%s", str(exc))
        return None


def require_session_user(request: Request) -> SessionUser:
    user = get_session_user(request)
    if user is None:
        raise ApiError(code=ErrorCode.UNAUTHORIZED, message="Authentication required", status_code=401)
    return user


def issue_session_token(request: Request, session: IdentitySession) -> str:
    settings = request.app.state.settings
    return create_session_token(
        secret_key=settings.secret_key,
        encryptor=request.app.state.field_encryptor,
        user_id=session.user.id,
        email=session.user.email,
        provider_access_token=session.access_token,
        ttl_s=int(settings.session_ttl_seconds),
    )


def set_session_cookie(request: Request, response: Any, token: str) -> None:
    settings = request.app.state.settings
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=int(settings.session_ttl_seconds),
        httponly=True,
        samesite="lax",
        secure=bool(settings.is_prod),
        path="/",
    )


def clear_session_cookie(request: Request, response: Any) -> None:
    settings = request.app.state.settings
    response.delete_cookie(settings.session_cookie_name, path="/")


def upstream_api_error(service: str, exc: CdnError | IdentityError, *, action: str) -> ApiError:
    """Logs an external-service failure and maps it to the generic upstream envelope."""
    observe_upstream_error(service)
    log.error(
        "upstream_call_failed service=%s action=%s status=%s err=%s",
        service,
        action,
        getattr(exc, "status_code", None),
        str(exc),
        exc_info=exc,
    )
    return ApiError(
        code=ErrorCode.UPSTREAM_ERROR,
        message=f"{action} failed",
        status_code=500,
        details={"service": service},
    )
