from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from snapslock.core.logging import get_logger

log = get_logger(__name__)

AUTH_PATH = "/auth/v1"


class IdentityError(RuntimeError):
    """A rejected or failed identity-provider call.

    ``status_code`` is the provider's HTTP status (``None`` for transport
    failures); 400/401/422 mean the caller's credentials were refused.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_rejection(self) -> bool:
        return self.status_code in {400, 401, 403, 422}


@dataclass(frozen=True, slots=True)
class IdentityConfig:
    url: str
    anon_key: str
    oauth_provider: str = "google"

    @property
    def configured(self) -> bool:
        return bool(self.url.strip() and self.anon_key.strip())

    def endpoint(self, path: str) -> str:
        return self.url.rstrip("/") + AUTH_PATH + "/" + path.lstrip("/")


@dataclass(frozen=True, slots=True)
class IdentityUser:
    id: str
    email: str | None
    user_metadata: dict[str, Any] = field(default_factory=dict)
    providers: tuple[str, ...] = ()
    created_at: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "user_metadata": dict(self.user_metadata),
            "providers": list(self.providers),
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class IdentitySession:
    access_token: str
    refresh_token: str | None
    expires_in: int | None
    user: IdentityUser


def _parse_user(data: Any) -> IdentityUser:
    if not isinstance(data, dict):
        raise IdentityError("Invalid identity user shape")
    user_id = data.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise IdentityError("Identity user missing id")

    email = data.get("email")
    metadata = data.get("user_metadata")
    providers: list[str] = []
    for ident in data.get("identities") or []:
        if isinstance(ident, dict) and isinstance(ident.get("provider"), str):
            providers.append(ident["provider"])
    created_at = data.get("created_at")

    return IdentityUser(
        id=user_id,
        email=email if isinstance(email, str) and email else None,
        user_metadata=dict(metadata) if isinstance(metadata, dict) else {},
        providers=tuple(dict.fromkeys(providers)),
        created_at=created_at if isinstance(created_at, str) else None,
    )


def _parse_session(data: Any) -> IdentitySession:
    if not isinstance(data, dict):
        raise IdentityError("Invalid identity session shape")
    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise IdentityError("Identity response missing access_token")
    refresh_token = data.get("refresh_token")
    expires_in = data.get("expires_in")
    return IdentitySession(
        access_token=access_token,
        refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
        expires_in=int(expires_in) if isinstance(expires_in, int) and expires_in > 0 else None,
        user=_parse_user(data.get("user")),
    )


def _error_message(resp: httpx.Response, fallback: str) -> str:
    try:
        data = resp.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:200]
    return fallback


class IdentityClient:
    def __init__(
        self,
        config: IdentityConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        self.config = config
        self._transport = transport
        self._timeout_s = float(timeout_s)

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.config.anon_key}
        headers["Authorization"] = f"Bearer {access_token or self.config.anon_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        params: Mapping[str, str] | None = None,
        json: Mapping[str, Any] | None = None,
        access_token: str | None = None,
    ) -> Any:
        if not self.config.configured:
            raise IdentityError("Identity provider is not configured")

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=httpx.Timeout(self._timeout_s, connect=10.0),
        ) as client:
            try:
                resp = await client.request(
                    method,
                    self.config.endpoint(path),
                    params=params,
                    json=json,
                    headers=self._headers(access_token),
                )
            except httpx.HTTPError as exc:
                raise IdentityError(f"{action} transport error: {type(exc).__name__}") from exc

        if resp.status_code == 204:
            return None
        if resp.status_code >= 400:
            log.info("identity_call_failed action=%s status=%s", action, resp.status_code)
            raise IdentityError(_error_message(resp, f"{action} failed"), status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise IdentityError(f"{action} response is not JSON", status_code=resp.status_code) from exc

    async def sign_in_with_password(self, *, email: str, password: str) -> IdentitySession:
        data = await self._request(
            "POST",
            "token",
            action="password sign-in",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _parse_session(data)

    async def sign_up(self, *, email: str, password: str) -> tuple[IdentityUser, IdentitySession | None]:
        """Returns the new user and, when no email confirmation is pending, its session."""
        data = await self._request("POST", "signup", action="sign-up", json={"email": email, "password": password})
        if isinstance(data, dict) and data.get("access_token"):
            session = _parse_session(data)
            return session.user, session
        user = data.get("user") if isinstance(data, dict) and isinstance(data.get("user"), dict) else data
        return _parse_user(user), None

    async def exchange_code_for_session(self, *, auth_code: str, code_verifier: str) -> IdentitySession:
        data = await self._request(
            "POST",
            "token",
            action="code exchange",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return _parse_session(data)

    async def sign_in_with_id_token(self, *, provider: str, id_token: str, nonce: str | None) -> IdentitySession:
        body: dict[str, Any] = {"provider": provider, "id_token": id_token}
        if nonce:
            body["nonce"] = nonce
        data = await self._request(
            "POST",
            "token",
            action="id-token sign-in",
            params={"grant_type": "id_token"},
            json=body,
        )
        return _parse_session(data)

    async def get_user(self, *, access_token: str) -> IdentityUser:
        return _parse_user(await self._request("GET", "user", action="get user", access_token=access_token))

    async def update_user_metadata(self, *, access_token: str, data: Mapping[str, Any]) -> IdentityUser:
        payload = await self._request(
            "PUT",
            "user",
            action="update user",
            json={"data": dict(data)},
            access_token=access_token,
        )
        return _parse_user(payload)

    async def sign_out(self, *, access_token: str) -> None:
        await self._request("POST", "logout", action="sign-out", access_token=access_token)

    def authorize_url(self, *, redirect_to: str, code_challenge: str, provider: str | None = None) -> str:
        query = urlencode(
            {
                "provider": provider or self.config.oauth_provider,
                "redirect_to": redirect_to,
                "code_challenge": code_challenge,
                "code_challenge_method": "s256",
            }
        )
        return f"{self.config.endpoint('authorize')}?{query}"
