from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from snapslock.core.request_id import get_or_create_request_id, set_request_id_header
from snapslock.db.session import create_sessionmaker
from snapslock.db.tags_list import list_tags as db_list_tags

router = APIRouter()


@router.get("/api/tags")
async def list_tags(request: Request) -> Any:
    engine = request.app.state.engine
    Session = create_sessionmaker(engine)
    async with Session() as session:
        items = await db_list_tags(session)

    rid = get_or_create_request_id(request)
    resp = JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "tags": [item.to_json() for item in items],
            "request_id": rid,
        },
    )
    set_request_id_header(resp, rid)
    return resp
