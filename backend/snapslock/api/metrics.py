from __future__ import annotations

import hmac

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client.exposition import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncEngine

from snapslock.core.errors import ApiError, ErrorCode
from snapslock.core.logging import get_logger
from snapslock.core.metrics import METRICS_SCRAPE_ERRORS_TOTAL, set_catalog_counts
from snapslock.core.security import parse_bearer_token
from snapslock.db.catalog import count_catalog

log = get_logger(__name__)

router = APIRouter()


def require_metrics_token(request: Request) -> None:
    expected = str(request.app.state.settings.metrics_token or "")
    if not expected:
        return
    token = parse_bearer_token(request.headers.get("Authorization"))
    if not token or not hmac.compare_digest(token, expected):
        raise ApiError(code=ErrorCode.UNAUTHORIZED, message="Metrics token required", status_code=401)


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    require_metrics_token(request)

    engine: AsyncEngine | None = getattr(request.app.state, "engine", None)
    if engine is not None:
        try:
            set_catalog_counts(await count_catalog(engine))
        except Exception as exc:
            METRICS_SCRAPE_ERRORS_TOTAL.inc()
            log.warning("metrics_catalog_query_failed err=%s", type(exc).__name__)

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
