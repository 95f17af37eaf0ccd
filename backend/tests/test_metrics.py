from __future__ import annotations

import asyncio
import re
from pathlib import Path

from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from snapslock.db.models.base import Base
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag
from snapslock.db.session import create_sessionmaker
from snapslock.main import create_app


def _make_app(tmp_path: Path, monkeypatch, *, name: str, metrics_token: str = ""):
    db_url = "sqlite+aiosqlite:///" + (tmp_path / name).as_posix()
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("FIELD_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    monkeypatch.setenv("METRICS_TOKEN", metrics_token)
    return create_app()


def test_metrics_requires_token_when_configured(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="metrics_auth.db", metrics_token="scrape_secret")

    with TestClient(app) as client:
        resp = client.get("/metrics", headers={"X-Request-Id": "req_test"})
        assert resp.status_code == 401
        body = resp.json()
        assert body["ok"] is False
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"] == "req_test"

        wrong = client.get("/metrics", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

        ok = client.get("/metrics", headers={"Authorization": "Bearer scrape_secret"})
        assert ok.status_code == 200


def test_metrics_exposes_catalog_and_request_metrics(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="metrics_basic.db")

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add_all(
                [
                    Image(title="a", public_id="w/a", secure_url="https://cdn.example.test/a.jpg"),
                    Image(title="b", public_id="w/b", secure_url="https://cdn.example.test/b.jpg"),
                    Tag(name="sunset", slug="sunset"),
                ]
            )
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())

    with TestClient(app) as client:
        assert client.get("/api/images").status_code == 200

        resp = client.get("/metrics")
        assert resp.status_code == 200

        text = resp.text
        assert "snapslock_image_list_requests_total" in text
        assert "snapslock_image_list_latency_seconds" in text
        assert "snapslock_uploads_total" in text
        assert "snapslock_like_toggles_total" in text
        assert "snapslock_signins_total" in text
        assert "snapslock_upstream_errors_total" in text

        assert re.search(r'snapslock_catalog_count\{kind="images"\}\s+2(\.0+)?\b', text)
        assert re.search(r'snapslock_catalog_count\{kind="tags"\}\s+1(\.0+)?\b', text)
        assert re.search(r'snapslock_catalog_count\{kind="likes"\}\s+0(\.0+)?\b', text)
