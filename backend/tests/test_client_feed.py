from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
from cryptography.fernet import Fernet

from snapslock.client.api import ApiClientError, ImagePageResult, SnapslockApi
from snapslock.client.feed import ImageFeed
from snapslock.db.models.base import Base
from snapslock.db.models.image_tags import ImageTag
from snapslock.db.models.images import Image
from snapslock.db.models.tags import Tag
from snapslock.db.session import create_sessionmaker
from snapslock.main import create_app


def _img(image_id: str) -> dict[str, str]:
    return {"id": image_id, "title": image_id}


class _ScriptedApi:
    """Serves queued results; a result may be an exception or an ``asyncio.Event`` gate plus a result."""

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], int, int]] = []
        self.responses: list[object] = []

    async def list_images(self, *, tags=(), page: int = 1, page_size: int = 12) -> ImagePageResult:  # type: ignore[no-untyped-def]
        self.calls.append((tuple(tags), page, page_size))
        item = self.responses.pop(0)
        if isinstance(item, tuple):
            gate, item = item
            await gate.wait()
        if isinstance(item, Exception):
            raise item
        assert isinstance(item, ImagePageResult)
        return item


def test_feed_appends_pages_without_duplicates() -> None:
    api = _ScriptedApi()
    api.responses = [
        ImagePageResult(images=[_img("a"), _img("b")], has_more=True, total=4),
        ImagePageResult(images=[_img("b"), _img("c"), _img("d")], has_more=False, total=4),
    ]
    feed = ImageFeed(api, page_size=2)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        assert [i["id"] for i in feed.images] == ["a", "b"]
        assert feed.has_more is True

        assert await feed.load_more() is True
        assert [i["id"] for i in feed.images] == ["a", "b", "c", "d"]
        assert feed.has_more is False
        assert feed.page == 2

        assert await feed.load_more() is False

    asyncio.run(_run())
    assert api.calls == [((), 1, 2), ((), 2, 2)]


def test_feed_ignores_load_more_while_fetching() -> None:
    api = _ScriptedApi()
    gate = asyncio.Event()
    api.responses = [
        ImagePageResult(images=[_img("a")], has_more=True, total=3),
        (gate, ImagePageResult(images=[_img("b")], has_more=True, total=3)),
    ]
    feed = ImageFeed(api, page_size=1)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        first = asyncio.create_task(feed.load_more())
        await asyncio.sleep(0)
        assert feed.is_fetching_more is True
        assert await feed.load_more() is False
        gate.set()
        assert await first is True
        assert feed.is_fetching_more is False

    asyncio.run(_run())
    assert [c[1] for c in api.calls] == [1, 2]


def test_feed_drops_responses_for_stale_tag_selection() -> None:
    api = _ScriptedApi()
    slow = asyncio.Event()
    api.responses = [
        ImagePageResult(images=[_img("all")], has_more=False, total=1),
        (slow, ImagePageResult(images=[_img("sunset-only")], has_more=True, total=30)),
        ImagePageResult(images=[_img("beach-only")], has_more=False, total=1),
    ]
    feed = ImageFeed(api)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        stale = asyncio.create_task(feed.set_tags(["sunset"]))
        await asyncio.sleep(0)
        assert feed.is_loading is True

        await feed.set_tags(["beach"])
        assert [i["id"] for i in feed.images] == ["beach-only"]

        slow.set()
        await stale
        assert [i["id"] for i in feed.images] == ["beach-only"]
        assert feed.has_more is False
        assert feed.tags == frozenset({"beach"})

        await feed.set_tags(["beach"])

    asyncio.run(_run())
    assert [c[0] for c in api.calls] == [(), ("sunset",), ("beach",)]


def test_feed_drops_late_next_page_after_tag_change() -> None:
    api = _ScriptedApi()
    late_page = asyncio.Event()
    new_first_page = asyncio.Event()
    api.responses = [
        ImagePageResult(images=[_img("a")], has_more=True, total=9),
        (late_page, ImagePageResult(images=[_img("stale-b")], has_more=True, total=9)),
        (new_first_page, ImagePageResult(images=[_img("beach-1")], has_more=False, total=1)),
    ]
    feed = ImageFeed(api, page_size=1)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        more = asyncio.create_task(feed.load_more())
        await asyncio.sleep(0)
        assert feed.is_fetching_more is True

        switch = asyncio.create_task(feed.set_tags(["beach"]))
        await asyncio.sleep(0)
        assert feed.is_loading is True
        assert feed.is_fetching_more is False

        late_page.set()
        assert await more is True
        assert feed.images == []
        assert feed.is_loading is True
        assert feed.is_fetching_more is False

        new_first_page.set()
        await switch
        assert [i["id"] for i in feed.images] == ["beach-1"]
        assert feed.page == 1
        assert feed.busy is False
        assert feed.has_more is False

    asyncio.run(_run())
    assert api.calls == [((), 1, 1), ((), 2, 1), (("beach",), 1, 1)]


def test_feed_retries_first_page_after_failed_start() -> None:
    api = _ScriptedApi()
    api.responses = [
        ApiClientError("boom", status_code=500),
        ImagePageResult(images=[_img("p1")], has_more=True, total=2),
        ImagePageResult(images=[_img("p2")], has_more=False, total=2),
    ]
    feed = ImageFeed(api, page_size=1)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        assert feed.images == []
        assert feed.error is not None
        assert feed.page == 1

        assert await feed.load_more() is True
        assert [i["id"] for i in feed.images] == ["p1"]
        assert feed.page == 1
        assert feed.error is None

        assert await feed.load_more() is True
        assert [i["id"] for i in feed.images] == ["p1", "p2"]

    asyncio.run(_run())
    assert [c[1] for c in api.calls] == [1, 1, 2]


def test_feed_compares_tag_selection_by_slug() -> None:
    api = _ScriptedApi()
    api.responses = [ImagePageResult(images=[_img("s")], has_more=False, total=1)]
    feed = ImageFeed(api, tags=["Sunset", ""])  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        await feed.set_tags(["sunset", " SUNSET "])

    asyncio.run(_run())
    assert feed.tags == frozenset({"sunset"})
    assert api.calls == [(("sunset",), 1, 12)]


def test_feed_error_keeps_loaded_images() -> None:
    api = _ScriptedApi()
    api.responses = [
        ImagePageResult(images=[_img("a")], has_more=True, total=5),
        ApiClientError("boom", status_code=500),
        ImagePageResult(images=[_img("b")], has_more=False, total=5),
    ]
    feed = ImageFeed(api, page_size=1)  # type: ignore[arg-type]

    async def _run() -> None:
        await feed.start()
        assert await feed.load_more() is True
        assert [i["id"] for i in feed.images] == ["a"]
        assert feed.error is not None
        assert feed.page == 1
        assert feed.has_more is True
        assert feed.busy is False

        assert await feed.load_more() is True
        assert [i["id"] for i in feed.images] == ["a", "b"]
        assert feed.error is None

    asyncio.run(_run())
    assert [c[1] for c in api.calls] == [1, 2, 2]


def test_feed_seeded_first_page_skips_initial_fetch() -> None:
    api = _ScriptedApi()
    feed = ImageFeed(api, initial=ImagePageResult(images=[_img("x")], has_more=False, total=1))  # type: ignore[arg-type]

    asyncio.run(feed.start())
    assert [i["id"] for i in feed.images] == ["x"]
    assert api.calls == []


def test_feed_against_app(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///" + (tmp_path / "feed_app.db").as_posix())
    monkeypatch.setenv("FIELD_ENCRYPTION_KEY", Fernet.generate_key().decode("ascii"))
    app = create_app()

    async def _run() -> None:
        async with app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        Session = create_sessionmaker(app.state.engine)
        async with Session() as session:
            for n in range(1, 6):
                session.add(
                    Image(
                        id=f"img-{n}",
                        title=f"t{n}",
                        public_id=f"w/{n}",
                        secure_url=f"https://cdn.example.test/{n}.jpg",
                        created_at=f"2026-01-01T00:00:0{n}.000Z",
                    )
                )
            session.add(Tag(id=1, name="Sunset", slug="sunset"))
            await session.flush()
            session.add_all([ImageTag(image_id=f"img-{n}", tag_id=1) for n in (2, 4)])
            await session.commit()

        async with SnapslockApi("http://testserver", transport=httpx.ASGITransport(app=app)) as api:
            feed = ImageFeed(api, page_size=2)
            await feed.start()
            assert [i["id"] for i in feed.images] == ["img-5", "img-4"]
            while await feed.load_more():
                pass
            assert [i["id"] for i in feed.images] == ["img-5", "img-4", "img-3", "img-2", "img-1"]
            assert feed.has_more is False

            await feed.set_tags(["sunset"])
            assert [i["id"] for i in feed.images] == ["img-4", "img-2"]
            assert feed.has_more is False

            tags = await api.list_tags()
            assert [t["slug"] for t in tags] == ["sunset"]

        await app.state.engine.dispose()

    asyncio.run(_run())
