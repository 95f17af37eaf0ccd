from __future__ import annotations

import html
import json
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from snapslock.api.auth.deps import get_identity_client, issue_session_token, set_session_cookie
from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import observe_signin, observe_upstream_error
from snapslock.core.request_id import get_or_create_request_id, set_request_id_header
from snapslock.core.security import new_pkce_pair
from snapslock.db.auth_attempts import (
    ATTEMPT_EXPIRED,
    create_auth_attempt,
    complete_auth_attempt,
    fail_auth_attempt,
    get_auth_attempt,
    mark_auth_attempt_delivered,
)
from snapslock.db.models.auth_attempts import ATTEMPT_COMPLETE, ATTEMPT_PENDING
from snapslock.identity.client import IdentityError

log = get_logger(__name__)

router = APIRouter()

LOGIN_ERROR_PATH = "/login?error=auth_callback"


def _callback_failed(request: Request) -> RedirectResponse:
    return RedirectResponse(url=request.app.state.settings.site_url + LOGIN_ERROR_PATH, status_code=303)


def render_popup_close_page(site_url: str) -> str:
    """Page served to the popup once the session is set; the opener learns the outcome by polling."""
    target = html.escape(site_url, quote=True)
    js_target = json.dumps(site_url).replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return (
        "<!DOCTYPE html>\n"
        "<html><head><title>Signed in</title>"
        "<script>"
        "window.close();"
        f"setTimeout(function(){{window.location.href={js_target};}},1000);"
        "</script></head>"
        "<body><p>Authentication successful. This window should close automatically.</p>"
        f'<p><a href="{target}">Continue</a></p></body></html>'
    )


@router.post("/auth/attempts")
async def start_attempt(request: Request) -> Any:
    settings = request.app.state.settings
    identity = get_identity_client(request)

    verifier, challenge = new_pkce_pair()
    attempt = await create_auth_attempt(
        request.app.state.engine,
        provider=settings.identity_oauth_provider,
        code_verifier=verifier,
    )

    redirect_to = f"{settings.site_url}/auth/callback?attempt={quote(attempt.id, safe='')}"
    rid = get_or_create_request_id(request)
    resp = JSONResponse(
        status_code=201,
        content={
            "ok": True,
            "attempt_id": attempt.id,
            "authorize_url": identity.authorize_url(redirect_to=redirect_to, code_challenge=challenge),
            "poll_url": f"/auth/attempts/{attempt.id}",
            "expires_at": attempt.expires_at,
            "request_id": rid,
        },
    )
    set_request_id_header(resp, rid)
    return resp


@router.get("/auth/callback")
async def oauth_callback(
    request: Request,
    code: str | None = None,
    attempt: str | None = None,
    error: str | None = None,
) -> Any:
    engine = request.app.state.engine

    state = await get_auth_attempt(engine, attempt_id=attempt or "")
    if state is None or state.effective_status() != ATTEMPT_PENDING:
        log.info("auth_callback_rejected attempt_known=%s", state is not None)
        return _callback_failed(request)

    code = (code or "").strip()
    if not code:
        await fail_auth_attempt(engine, attempt_id=state.id, error_code=(error or "missing_code")[:64])
        observe_signin(method="oauth", ok=False)
        log.info("auth_callback_missing_code attempt=%s provider_error=%s", state.id, error or "-")
        return _callback_failed(request)

    try:
        session = await get_identity_client(request).exchange_code_for_session(
            auth_code=code,
            code_verifier=state.code_verifier,
        )
    except IdentityError as exc:
        await fail_auth_attempt(engine, attempt_id=state.id, error_code="exchange_failed")
        observe_signin(method="oauth", ok=False)
        if not exc.is_rejection:
            observe_upstream_error("identity")
        log.warning("auth_code_exchange_failed attempt=%s status=%s", state.id, exc.status_code)
        return _callback_failed(request)

    token = issue_session_token(request, session)
    completed = await complete_auth_attempt(
        engine,
        attempt_id=state.id,
        user_id=session.user.id,
        session_token_enc=request.app.state.field_encryptor.encrypt_text(token),
    )
    if not completed:
        # Another callback for the same attempt finished first.
        log.info("auth_callback_duplicate attempt=%s", state.id)
        return _callback_failed(request)

    observe_signin(method="oauth", ok=True)
    log.info("signin_ok method=oauth user=%s attempt=%s", session.user.id, state.id)

    resp = HTMLResponse(content=render_popup_close_page(request.app.state.settings.site_url), status_code=200)
    set_session_cookie(request, resp, token)
    return resp


@router.get("/auth/attempts/{attempt_id}")
async def poll_attempt(request: Request, attempt_id: str) -> Any:
    engine = request.app.state.engine
    state = await get_auth_attempt(engine, attempt_id=attempt_id)
    if state is None:
        raise ApiError(code=ErrorCode.NOT_FOUND, message="Unknown sign-in attempt", status_code=404)

    status = state.effective_status()
    rid = get_or_create_request_id(request)
    content: dict[str, Any] = {
        "ok": True,
        "attempt_id": state.id,
        "status": status,
        "error_code": state.error_code,
        "delivered": state.delivered_at is not None,
        "request_id": rid,
    }

    token: str | None = None
    if status == ATTEMPT_COMPLETE and state.delivered_at is None and state.session_token_enc:
        if await mark_auth_attempt_delivered(engine, attempt_id=state.id):
            token = request.app.state.field_encryptor.decrypt_text(state.session_token_enc)
            content["delivered"] = True
            content["user_id"] = state.user_id

    if status == ATTEMPT_EXPIRED:
        content["error_code"] = content["error_code"] or "expired"

    resp = JSONResponse(status_code=200, content=content)
    if token is not None:
        set_session_cookie(request, resp, token)
    set_request_id_header(resp, rid)
    return resp
