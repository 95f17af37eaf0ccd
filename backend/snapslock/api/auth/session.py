from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from snapslock.api.auth.deps import (
    clear_session_cookie,
    get_identity_client,
    get_session_user,
    issue_session_token,
    set_session_cookie,
    upstream_api_error,
)
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import observe_signin
from snapslock.core.request_id import get_or_create_request_id, set_request_id_header
from snapslock.core.security import new_nonce_pair
from snapslock.identity.client import IdentityError, IdentitySession

log = get_logger(__name__)

router = APIRouter()

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CredentialsRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=256)


class OneTapRequest(BaseModel):
    credential: str = Field(min_length=1, max_length=8192)
    nonce: str | None = Field(default=None, max_length=256)


async def _load_json_body(request: Request, model: type[BaseModel], *, message: str) -> Any:
    try:
        data = await request.json()
    except ValueError as exc:
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400) from exc
    if not isinstance(data, dict):
        raise ApiError(code=ErrorCode.BAD_REQUEST, message="Invalid JSON body", status_code=400)
    try:
        return model(**data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ApiError(code=ErrorCode.BAD_REQUEST, message=message, status_code=400, details={"fields": fields}) from exc


def _signed_in_response(request: Request, session: IdentitySession, *, status_code: int = 200) -> JSONResponse:
    rid = get_or_create_request_id(request)
    resp = JSONResponse(
        status_code=status_code,
        content={"ok": True, "user": session.user.to_json(), "request_id": rid},
    )
    set_session_cookie(request, resp, issue_session_token(request, session))
    set_request_id_header(resp, rid)
    return resp


def _signin_error(exc: IdentityError, *, method: str) -> ApiError:
    observe_signin(method=method, ok=False)
    if exc.is_rejection:
        log.info("signin_rejected method=%s status=%s", method, exc.status_code)
        return ApiError(code=ErrorCode.UNAUTHORIZED, message=str(exc) or "Invalid credentials", status_code=401)
    return upstream_api_error("identity", exc, action="Sign-in")


@router.post("/auth/login")
async def login(request: Request) -> Any:
    body = await _load_json_body(request, CredentialsRequest, message="Invalid email or password")
    try:
        session = await get_identity_client(request).sign_in_with_password(email=body.email, password=body.password)
    except IdentityError as exc:
        raise _signin_error(exc, method="password") from exc

    observe_signin(method="password", ok=True)
    log.info("signin_ok method=password user=%s", session.user.id)
    return _signed_in_response(request, session)


@router.post("/auth/signup")
async def signup(request: Request) -> Any:
    body = await _load_json_body(request, CredentialsRequest, message="Invalid email or password")
    try:
        user, session = await get_identity_client(request).sign_up(email=body.email, password=body.password)
    except IdentityError as exc:
        if exc.is_rejection:
            raise ApiError(code=ErrorCode.BAD_REQUEST, message=str(exc) or "Sign-up rejected", status_code=400) from exc
        raise upstream_api_error("identity", exc, action="Sign-up") from exc

    log.info("signup_ok user=%s confirmed=%s", user.id, session is not None)
    if session is not None:
        observe_signin(method="password", ok=True)
        return _signed_in_response(request, session, status_code=201)

    rid = get_or_create_request_id(request)
    return JSONResponse(
        status_code=201,
        content={"ok": True, "user": user.to_json(), "confirmation_required": True, "request_id": rid},
    )


@router.post("/auth/logout")
async def logout(request: Request) -> Any:
    user = get_session_user(request)
    if user is not None and user.access_token:
        try:
            await get_identity_client(request).sign_out(access_token=user.access_token)
        except IdentityError as exc:
            # Local cookie is cleared either way.
            log.warning("signout_provider_failed user=%s status=%s", user.id, exc.status_code)

    rid = get_or_create_request_id(request)
    resp = JSONResponse(status_code=200, content={"ok": True, "request_id": rid})
    clear_session_cookie(request, resp)
    return resp


@router.get("/auth/session")
async def session_info(request: Request) -> dict[str, Any]:
    user = get_session_user(request)
    return {
        "ok": True,
        "authenticated": user is not None,
        "user": {"id": user.id, "email": user.email} if user is not None else None,
        "request_id": get_or_create_request_id(request),
    }


@router.post("/auth/one-tap/nonce")
async def one_tap_nonce(request: Request) -> dict[str, Any]:
    nonce, hashed = new_nonce_pair()
    return {
        "ok": True,
        "nonce": nonce,
        "hashed_nonce": hashed,
        "client_id": request.app.state.settings.google_client_id or None,
        "request_id": get_or_create_request_id(request),
    }


@router.post("/auth/one-tap")
async def one_tap(request: Request) -> Any:
    body = await _load_json_body(request, OneTapRequest, message="Missing credential")
    try:
        session = await get_identity_client(request).sign_in_with_id_token(
            provider="google",
            id_token=body.credential,
            nonce=body.nonce,
        )
    except IdentityError as exc:
        raise _signin_error(exc, method="one_tap") from exc

    observe_signin(method="one_tap", ok=True)
    log.info("signin_ok method=one_tap user=%s", session.user.id)
    return _signed_in_response(request, session)
