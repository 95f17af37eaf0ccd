from __future__ import annotations

import asyncio
from pathlib import Path

from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from snapslock.db.models.base import Base
from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag
from snapslock.db.session import create_sessionmaker
from snapslock.main import create_app


def _make_app(tmp_path: Path, monkeypatch, *, name: str):
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///" + (tmp_path / name).as_posix())
    monkeypatch.setenv("FIELD_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    return create_app()


def _image(n: int) -> Image:
    return Image(
        id=f"img-{n:03d}",
        title=f"Wallpaper {n}",
        public_id=f"wallpapers/{n}",
        secure_url=f"https://cdn.example.test/{n}.jpg",
        created_at=f"2026-01-01T00:00:{n:02d}.000Z",
        updated_at=f"2026-01-01T00:00:{n:02d}.000Z",
    )


def test_images_list_tag_intersection(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="images_tags.db")

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add_all([_image(1), _image(2), _image(3)])
            sunset = Tag(id=1, name="Sunset", slug="sunset")
            beach = Tag(id=2, name="Beach", slug="beach")
            forest = Tag(id=3, name="Forest", slug="forest")
            session.add_all([sunset, beach, forest])
            await session.flush()
            session.add_all(
                [
                    ImageTag(image_id="img-001", tag_id=1),
                    ImageTag(image_id="img-001", tag_id=2),
                    ImageTag(image_id="img-002", tag_id=1),
                    ImageTag(image_id="img-003", tag_id=2),
                    ImageTag(image_id="img-003", tag_id=3),
                ]
            )
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())

    with TestClient(app) as client:
        resp = client.get(
            "/api/images",
            params=[("tag", "sunset"), ("tag", "beach")],
            headers={"X-Request-Id": "req_test"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["ok"] is True
        assert body["request_id"] == "req_test"
        assert [img["id"] for img in body["images"]] == ["img-001"]
        assert body["total"] == 1
        assert body["hasMore"] is False
        assert [t["slug"] for t in body["images"][0]["tags"]] == ["beach", "sunset"]

        single = client.get("/api/images", params={"tag": "Sunset"}).json()
        assert [img["id"] for img in single["images"]] == ["img-002", "img-001"]

        unknown = client.get("/api/images", params=[("tag", "sunset"), ("tag", "nope")]).json()
        assert unknown["images"] == []
        assert unknown["total"] == 0
        assert unknown["hasMore"] is False

        disjoint = client.get("/api/images", params=[("tag", "sunset"), ("tag", "forest")]).json()
        assert disjoint["images"] == []

        everything = client.get("/api/images").json()
        assert [img["id"] for img in everything["images"]] == ["img-003", "img-002", "img-001"]


def test_images_list_pagination_has_more(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="images_pages.db")

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add_all([_image(n) for n in range(1, 14)])
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())

    with TestClient(app) as client:
        page1 = client.get("/api/images", params={"page": 1, "pageSize": 12}).json()
        assert len(page1["images"]) == 12
        assert page1["total"] == 13
        assert page1["hasMore"] is True
        assert page1["images"][0]["id"] == "img-013"

        page2 = client.get("/api/images", params={"page": 2, "pageSize": 12}).json()
        assert [img["id"] for img in page2["images"]] == ["img-001"]
        assert page2["hasMore"] is False

        beyond = client.get("/api/images", params={"page": 5, "pageSize": 12}).json()
        assert beyond["images"] == []
        assert beyond["hasMore"] is False

        seen = {img["id"] for img in page1["images"]} | {img["id"] for img in page2["images"]}
        assert len(seen) == 13


def test_images_list_exact_page_has_no_more(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="images_exact.db")

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add_all([_image(n) for n in range(1, 13)])
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())

    with TestClient(app) as client:
        body = client.get("/api/images", params={"pageSize": 12}).json()
        assert len(body["images"]) == 12
        assert body["hasMore"] is False


def test_images_list_rejects_bad_paging(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="images_bad.db")

    with TestClient(app) as client:
        for params in ({"page": 0}, {"pageSize": 0}, {"pageSize": 101}):
            resp = client.get("/api/images", params=params)
            assert resp.status_code == 400
            assert resp.json()["code"] == "BAD_REQUEST"

        too_many = client.get("/api/images", params=[("tag", f"t{i}") for i in range(21)])
        assert too_many.status_code == 400


def test_image_get_by_id(tmp_path: Path, monkeypatch) -> None:
    app = _make_app(tmp_path, monkeypatch, name="images_get.db")

    async def _seed() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            session.add(_image(7))
            session.add(Tag(id=1, name="Night", slug="night"))
            await session.flush()
            session.add(ImageTag(image_id="img-007", tag_id=1))
            await session.commit()
        await app.state.engine.dispose()

    asyncio.run(_seed())

    with TestClient(app) as client:
        resp = client.get("/api/images/img-007")
        assert resp.status_code == 200
        image = resp.json()["image"]
        assert image["title"] == "Wallpaper 7"
        assert image["likes_count"] == 0
        assert image["tags"] == [
            {"id": "1", "name": "Night", "slug": "night", "created_at": image["tags"][0]["created_at"]}
        ]

        missing = client.get("/api/images/nope")
        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"
