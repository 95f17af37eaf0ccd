from __future__ import annotations

import asyncio
from pathlib import Path

import sqlalchemy as sa
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import select

from snapslock.core.security import create_session_token
from snapslock.db.likes import get_like_status, get_like_statuses, toggle_like
from snapslock.db.engine import create_engine
from snapslock.db.models.base import Base
from snapslock.db.models.image_likes import ImageLike
from snapslock.db.models.images import Image
from snapslock.db.session import create_sessionmaker
from snapslock.main import create_app


def _make_app(tmp_path: Path, monkeypatch, *, name: str):
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///" + (tmp_path / name).as_posix())
    monkeypatch.setenv("FIELD_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    app = create_app()

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add_all(
                [
                    Image(id="img-a", title="a", public_id="w/a", secure_url="https://cdn.example.test/a.jpg"),
                    Image(id="img-b", title="b", public_id="w/b", secure_url="https://cdn.example.test/b.jpg"),
                ]
            )
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())
    return app


def _login(client: TestClient, app, user_id: str) -> None:  # type: ignore[no-untyped-def]
    token = create_session_token(
        secret_key=app.state.settings.secret_key,
        encryptor=app.state.field_encryptor,
        user_id=user_id,
        email=None,
        provider_access_token=None,
        ttl_s=3600,
    )
    client.cookies.set(app.state.settings.session_cookie_name, token)


def test_like_toggle_requires_session(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="likes_auth.db")

    async def _seed_liked() -> None:
        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add(
                Image(
                    id="img-liked",
                    title="liked",
                    public_id="w/liked",
                    secure_url="https://cdn.example.test/liked.jpg",
                    likes_count=3,
                )
            )
            await session.flush()
            session.add(ImageLike(user_id="u-other", image_id="img-liked"))
            await session.commit()
        await app.state.engine.dispose()

    async def _like_rows() -> int:
        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            count = (await session.execute(select(sa.func.count()).select_from(ImageLike))).scalar_one()
        await app.state.engine.dispose()
        return int(count)

    asyncio.run(_seed_liked())

    with TestClient(app) as client:
        resp = client.post("/api/images/likes", json={"imageId": "img-liked"}, headers={"X-Request-Id": "req_test"})
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"] == "req_test"

        client.cookies.set(app.state.settings.session_cookie_name, "not-a-token")
        assert client.post("/api/images/likes", json={"imageId": "img-liked"}).status_code == 401

        status = client.get("/api/images/likes", params={"imageId": "img-liked"}).json()
        assert status["likes_count"] == 3
        assert status["is_liked_by_user"] is False

    assert asyncio.run(_like_rows()) == 1


def test_like_toggle_twice_restores_state(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="likes_toggle.db")

    with TestClient(app) as client:
        _login(client, app, "user_1")

        first = client.post("/api/images/likes", json={"imageId": "img-a"})
        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["action"] == "liked"
        assert body["isLiked"] is True
        assert body["likes_count"] == 1

        status = client.get("/api/images/likes", params={"imageId": "img-a"}).json()
        assert status["likes_count"] == 1
        assert status["is_liked_by_user"] is True

        second = client.post("/api/images/likes", json={"imageId": "img-a"}).json()
        assert second["action"] == "unliked"
        assert second["isLiked"] is False
        assert second["likes_count"] == 0

        image = client.get("/api/images/img-a").json()["image"]
        assert image["likes_count"] == 0


def test_like_counts_across_users_and_batch(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="likes_batch.db")

    with TestClient(app) as client:
        _login(client, app, "user_1")
        assert client.post("/api/images/likes", json={"imageId": "img-a"}).json()["likes_count"] == 1

        _login(client, app, "user_2")
        assert client.post("/api/images/likes", json={"imageId": "img-a"}).json()["likes_count"] == 2
        assert client.post("/api/images/likes", json={"imageId": "img-b"}).json()["likes_count"] == 1

        batch = client.get("/api/images/likes/batch", params={"ids": "img-a,img-b,img-a,ghost"})
        assert batch.status_code == 200
        assert batch.json()["likes"] == {
            "img-a": {"isLiked": True, "count": 2},
            "img-b": {"isLiked": True, "count": 1},
            "ghost": {"isLiked": False, "count": 0},
        }

        _login(client, app, "user_1")
        likes = client.get("/api/images/likes/batch", params={"ids": "img-a,img-b"}).json()["likes"]
        assert likes["img-a"] == {"isLiked": True, "count": 2}
        assert likes["img-b"] == {"isLiked": False, "count": 1}


def test_like_validation(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="likes_validation.db")

    with TestClient(app) as client:
        _login(client, app, "user_1")

        missing = client.post("/api/images/likes", json={})
        assert missing.status_code == 400

        unknown = client.post("/api/images/likes", json={"imageId": "ghost"})
        assert unknown.status_code == 404
        assert unknown.json()["code"] == "NOT_FOUND"

        assert client.get("/api/images/likes").status_code == 400
        assert client.get("/api/images/likes/batch", params={"ids": " , "}).status_code == 400
        too_many = ",".join(f"id{i}" for i in range(101))
        assert client.get("/api/images/likes/batch", params={"ids": too_many}).status_code == 400


def test_db_toggle_like_keeps_count_in_step(tmp_path: Path) -> None:
    engine = create_engine("sqlite+aiosqlite:///" + (tmp_path / "likes_db.db").as_posix())

    async def _run() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        Session = create_sessionmaker(engine)
        async with Session() as session:
            session.add(Image(id="img-a", title="a", public_id="w/a", secure_url="https://cdn.example.test/a.jpg"))
            await session.commit()

        assert await toggle_like(engine, user_id="u1", image_id="ghost") is None

        results = [await toggle_like(engine, user_id="u1", image_id="img-a") for _ in range(5)]
        assert [r.is_liked for r in results if r] == [True, False, True, False, True]
        assert [r.likes_count for r in results if r] == [1, 0, 1, 0, 1]
        assert results[-1] is not None and results[-1].action == "liked"

        status = await get_like_status(engine, image_id="img-a", user_id="u1")
        assert (status.likes_count, status.is_liked) == (1, True)
        anon = await get_like_status(engine, image_id="img-a", user_id=None)
        assert (anon.likes_count, anon.is_liked) == (1, False)

        statuses = await get_like_statuses(engine, image_ids=["img-a", "ghost"], user_id="u2")
        assert statuses["img-a"].likes_count == 1
        assert statuses["img-a"].is_liked is False
        assert statuses["ghost"].likes_count == 0

        await engine.dispose()

    asyncio.run(_run())
