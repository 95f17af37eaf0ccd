from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import httpx
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from snapslock.db.models.base import Base
from snapslock.identity.client import IdentityClient, IdentityConfig
from snapslock.main import create_app

PASSWORD = "pw_sensitive_secret_123"
PROVIDER_ACCESS_TOKEN = "at_sensitive_secret_456"
PROVIDER_REFRESH_TOKEN = "rt_sensitive_secret_789"


def _make_app(tmp_path: Path, monkeypatch, handler):  # type: ignore[no-untyped-def]
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///" + (tmp_path / "sensitive.db").as_posix())
    monkeypatch.setenv("FIELD_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    identity = IdentityClient(
        IdentityConfig(url="https://id.example.test", anon_key="anon_test"),
        transport=httpx.MockTransport(handler),
    )
    app = create_app(identity_client=identity)

    async def _migrate() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await app.state.engine.dispose()

    asyncio.run(_migrate())
    return app


def test_login_secrets_not_in_logs_or_response(tmp_path: Path, monkeypatch, caplog) -> None:
    def handler(req: httpx.Request) -> httpx.Response:
        if req.url.path == "/auth/v1/token":
            return httpx.Response(
                200,
                json={
                    "access_token": PROVIDER_ACCESS_TOKEN,
                    "refresh_token": PROVIDER_REFRESH_TOKEN,
                    "expires_in": 3600,
                    "user": {"id": "user_1", "email": "u1@example.test"},
                },
            )
        return httpx.Response(404)

    app = _make_app(tmp_path, monkeypatch, handler)
    caplog.set_level(logging.DEBUG)

    with TestClient(app) as client:
        resp = client.post(
            "/auth/login",
            headers={"X-Request-Id": "req_test"},
            json={"email": "u1@example.test", "password": PASSWORD},
        )
        assert resp.status_code == 200

        dumped = json.dumps(resp.json(), ensure_ascii=False) + json.dumps(dict(resp.headers))
        for secret in (PASSWORD, PROVIDER_ACCESS_TOKEN, PROVIDER_REFRESH_TOKEN):
            assert secret not in dumped

        session = client.get("/auth/session").json()
        assert session["authenticated"] is True
        assert PROVIDER_ACCESS_TOKEN not in json.dumps(session)

    for secret in (PASSWORD, PROVIDER_ACCESS_TOKEN, PROVIDER_REFRESH_TOKEN):
        assert secret not in caplog.text


def test_rejected_login_does_not_echo_password(tmp_path: Path, monkeypatch, caplog) -> None:
    def handler(req: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error_description": "Invalid login credentials"})

    app = _make_app(tmp_path, monkeypatch, handler)
    caplog.set_level(logging.DEBUG)

    with TestClient(app) as client:
        resp = client.post("/auth/login", json={"email": "u1@example.test", "password": PASSWORD})
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == "UNAUTHORIZED"
        assert PASSWORD not in json.dumps(body)

        resp = client.post("/auth/login", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 400
        assert PASSWORD not in resp.text

    assert PASSWORD not in caplog.text
