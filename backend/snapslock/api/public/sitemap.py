from __future__ import annotations

from xml.sax.saxutils import escape

from fastapi import APIRouter, Request
from fastapi.responses import Response

from snapslock.core.time import iso_utc_ms
from snapslock.db.catalog import list_sitemap_images, list_sitemap_tag_slugs
from snapslock.db.session import create_sessionmaker

router = APIRouter()

BASE_ROUTES: tuple[tuple[str, str, str], ...] = (
    ("/", "daily", "1.0"),
    ("/login", "monthly", "0.5"),
    ("/upload", "monthly", "0.6"),
)


def _url_entry(loc: str, *, lastmod: str, changefreq: str, priority: str) -> str:
    return (
        "<url>"
        f"<loc>{escape(loc)}</loc>"
        f"<lastmod>{escape(lastmod)}</lastmod>"
        f"<changefreq>{changefreq}</changefreq>"
        f"<priority>{priority}</priority>"
        "</url>"
    )


def render_sitemap(site_url: str, *, images: list[tuple[str, str]], tag_slugs: list[str], now: str) -> str:
    entries = [_url_entry(site_url + path, lastmod=now, changefreq=freq, priority=prio) for path, freq, prio in BASE_ROUTES]
    entries.extend(
        _url_entry(f"{site_url}/image/{image_id}", lastmod=updated_at, changefreq="weekly", priority="0.8")
        for image_id, updated_at in images
    )
    entries.extend(
        _url_entry(f"{site_url}/tag/{slug}", lastmod=now, changefreq="weekly", priority="0.7") for slug in tag_slugs
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">' + "".join(entries) + "</urlset>\n"
    )


@router.get("/sitemap.xml")
async def sitemap(request: Request) -> Response:
    site_url = str(request.app.state.settings.site_url).rstrip("/")

    Session = create_sessionmaker(request.app.state.engine)
    async with Session() as session:
        images = await list_sitemap_images(session)
        tag_slugs = await list_sitemap_tag_slugs(session)

    body = render_sitemap(
        site_url,
        images=[(img.id, img.updated_at) for img in images],
        tag_slugs=tag_slugs,
        now=iso_utc_ms(),
    )
    return Response(content=body, media_type="application/xml")
