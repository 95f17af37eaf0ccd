from __future__ import annotations

import time

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from snapslock.api.auth.oauth import router as oauth_router
from snapslock.api.auth.session import router as auth_session_router
from snapslock.api.metrics import router as metrics_router
from snapslock.api.profile import router as profile_router
from snapslock.api.public.cdn import router as cdn_router
from snapslock.api.public.healthz import router as healthz_router
from snapslock.api.public.images import router as images_router
from snapslock.api.public.likes import router as likes_router
from snapslock.api.public.sitemap import router as sitemap_router
from snapslock.api.public.tags import router as tags_router
from snapslock.cdn.client import CdnClient, CdnConfig
from snapslock.core.config import Settings, load_settings
from snapslock.core.crypto import FieldEncryptor
from snapslock.core.errors import ApiError, ErrorCode, json_error_response
from snapslock.core.logging import configure_logging, get_logger
from snapslock.core.metrics import observe_image_list
from snapslock.core.request_id import RequestIdMiddleware
from snapslock.db.engine import create_engine
from snapslock.identity.client import IdentityClient, IdentityConfig

log = get_logger(__name__)


def _image_list_result_from_status(status: int) -> str:
    if status == 200:
        return "ok"
    if status == 400:
        return "bad_request"
    return "error"


def build_cdn_client(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> CdnClient:
    return CdnClient(
        CdnConfig(
            cloud_name=settings.cdn_cloud_name,
            api_key=settings.cdn_api_key,
            api_secret=settings.cdn_api_secret,
            base_url=settings.cdn_base_url,
        ),
        transport=transport,
    )


def build_identity_client(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> IdentityClient:
    return IdentityClient(
        IdentityConfig(
            url=settings.identity_url,
            anon_key=settings.identity_anon_key,
            oauth_provider=settings.identity_oauth_provider,
        ),
        transport=transport,
    )


def create_app(
    *,
    settings: Settings | None = None,
    cdn_client: CdnClient | None = None,
    identity_client: IdentityClient | None = None,
) -> FastAPI:
    configure_logging()
    settings = settings or load_settings()

    app = FastAPI(title="snapslock", docs_url="/api/docs", redoc_url="/api/redoc")

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):  # type: ignore[no-redef]
        return json_error_response(
            code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            request=request,
            details=exc.details,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[no-redef]
        fields = sorted({str(err.get("loc", ["", ""])[-1]) for err in exc.errors()})
        return json_error_response(
            code=ErrorCode.BAD_REQUEST,
            message="Invalid request parameters",
            status_code=400,
            request=request,
            details={"fields": fields},
        )

    @app.exception_handler(SQLAlchemyError)
    async def _store_error_handler(request: Request, exc: SQLAlchemyError):  # type: ignore[no-redef]
        log.exception("store_error path=%s", request.url.path)
        return json_error_response(
            code=ErrorCode.STORE_ERROR,
            message="Data store request failed",
            status_code=500,
            request=request,
            details={"error_type": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[no-redef]
        log.exception("unhandled_exception path=%s", request.url.path)
        return json_error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="Internal server error",
            status_code=500,
            request=request,
            details={"error_type": type(exc).__name__},
        )

    app.add_middleware(RequestIdMiddleware)

    @app.middleware("http")
    async def _metrics_middleware(request: Request, call_next):  # type: ignore[no-redef]
        if request.url.path != "/api/images" or request.method != "GET":
            return await call_next(request)

        started = time.monotonic()
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            status_code = int(getattr(response, "status_code", 0) or 0) if response is not None else 500
            observe_image_list(
                result=_image_list_result_from_status(status_code),
                duration_s=time.monotonic() - started,
            )

    engine = create_engine(settings.database_url)
    app.state.engine = engine
    app.state.settings = settings
    app.state.field_encryptor = FieldEncryptor.from_key(settings.field_encryption_key)
    app.state.cdn_client = cdn_client or build_cdn_client(settings)
    app.state.identity_client = identity_client or build_identity_client(settings)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # type: ignore[no-redef]
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()

    app.include_router(healthz_router)
    # Fixed /api/images/* paths must precede /api/images/{image_id}.
    app.include_router(likes_router)
    app.include_router(images_router)
    app.include_router(tags_router)
    app.include_router(cdn_router)
    app.include_router(profile_router)
    app.include_router(auth_session_router)
    app.include_router(oauth_router)
    app.include_router(sitemap_router)
    app.include_router(metrics_router)

    log.info("app_created env=%s db=%s", settings.app_env, engine.url.get_backend_name())
    return app


app = create_app()
