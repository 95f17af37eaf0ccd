from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from snapslock.identity.client import IdentityClient, IdentityConfig, IdentityError

CONFIG = IdentityConfig(url="https://id.example.test/", anon_key="anon_test")

USER = {
    "id": "user_1",
    "email": "u1@example.test",
    "user_metadata": {"username": "one"},
    "identities": [{"provider": "google"}, {"provider": "email"}, {"provider": "google"}],
}


def test_exchange_code_for_session() -> None:
    def handler(req: httpx.Request) -> httpx.Response:
        assert str(req.url) == "https://id.example.test/auth/v1/token?grant_type=pkce"
        assert req.headers["Authorization"] == "Bearer anon_test"
        assert json.loads(req.content) == {"auth_code": "c1", "code_verifier": "v1"}
        return httpx.Response(
            200,
            json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "user": USER},
        )

    client = IdentityClient(CONFIG, transport=httpx.MockTransport(handler))
    session = asyncio.run(client.exchange_code_for_session(auth_code="c1", code_verifier="v1"))
    assert session.access_token == "at"
    assert session.expires_in == 3600
    assert session.user.id == "user_1"
    assert session.user.providers == ("google", "email")
    assert session.user.user_metadata == {"username": "one"}


def test_user_calls_use_access_token() -> None:
    seen: list[tuple[str, str, str]] = []

    def handler(req: httpx.Request) -> httpx.Response:
        seen.append((req.method, req.url.path, req.headers["Authorization"]))
        if req.method == "PUT":
            data = json.loads(req.content)["data"]
            return httpx.Response(200, json={**USER, "user_metadata": {**USER["user_metadata"], **data}})
        return httpx.Response(200, json=USER)

    client = IdentityClient(CONFIG, transport=httpx.MockTransport(handler))
    user = asyncio.run(client.get_user(access_token="tok"))
    assert user.email == "u1@example.test"

    updated = asyncio.run(client.update_user_metadata(access_token="tok", data={"display_name": "One"}))
    assert updated.user_metadata == {"username": "one", "display_name": "One"}

    assert seen == [("GET", "/auth/v1/user", "Bearer tok"), ("PUT", "/auth/v1/user", "Bearer tok")]


def test_identity_errors() -> None:
    def rejected(req: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"msg": "Password should be at least 6 characters"})

    client = IdentityClient(CONFIG, transport=httpx.MockTransport(rejected))
    with pytest.raises(IdentityError) as excinfo:
        asyncio.run(client.sign_up(email="a@example.test", password="x"))
    assert excinfo.value.status_code == 422
    assert excinfo.value.is_rejection is True
    assert str(excinfo.value) == "Password should be at least 6 characters"

    def outage(req: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    down = IdentityClient(CONFIG, transport=httpx.MockTransport(outage))
    with pytest.raises(IdentityError) as excinfo:
        asyncio.run(down.sign_in_with_password(email="a@example.test", password="secret"))
    assert excinfo.value.is_rejection is False

    unconfigured = IdentityClient(IdentityConfig(url="", anon_key=""))
    with pytest.raises(IdentityError, match="not configured"):
        asyncio.run(unconfigured.get_user(access_token="tok"))

    no_token = IdentityClient(CONFIG, transport=httpx.MockTransport(lambda req: httpx.Response(200, json={"user": USER})))
    with pytest.raises(IdentityError, match="access_token"):
        asyncio.run(no_token.sign_in_with_id_token(provider="google", id_token="idt", nonce=None))


def test_authorize_url() -> None:
    client = IdentityClient(CONFIG)
    url = client.authorize_url(redirect_to="https://app.test/auth/callback?attempt=att_1", code_challenge="chal")
    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://id.example.test/auth/v1/authorize"
    assert parse_qs(parts.query) == {
        "provider": ["google"],
        "redirect_to": ["https://app.test/auth/callback?attempt=att_1"],
        "code_challenge": ["chal"],
        "code_challenge_method": ["s256"],
    }
