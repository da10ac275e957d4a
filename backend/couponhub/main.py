import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from couponhub import seeds
from couponhub.api.v1 import api_router
from couponhub.core.config import Settings, settings as default_settings
from couponhub.core.dependencies import build_store
from couponhub.core.errors import CouponError, DuplicateMobile, NotFound, RateLimited, StorageFailure
from couponhub.core.logging_config import configure_logging
from couponhub.core.rate_limit import coupon_rate_limiter
from couponhub.core.redis_client import close_redis
from couponhub.core.sentry import init_sentry
from couponhub.middleware import RequestLoggingMiddleware
from couponhub.schemas.error import ErrorResponse
from couponhub.services.store import CouponStore

logger = logging.getLogger(__name__)

# Internal failures are logged but answered with a generic 500.
_INTERNAL_ERRORS = (StorageFailure, NotFound, DuplicateMobile)


def _internal_error_response() -> JSONResponse:
    payload = ErrorResponse(error="Internal server error")
    return JSONResponse(status_code=500, content=payload.payload())


def get_application(settings: Settings | None = None, store: CouponStore | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_json)
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = getattr(app.state, "store", None) is None
        if owned:
            app.state.store = build_store(settings)
        current: CouponStore = app.state.store
        if settings.seed_preset_coupons:
            await seeds.seed(current)
        logger.info("coupon_store_ready", extra={"backend": current.backend})
        try:
            yield
        finally:
            if owned:
                await current.close()
                app.state.store = None
            await close_redis()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "coupons", "description": "One coupon per mobile number"},
            {"name": "admin", "description": "Pool statistics and CSV replacement"},
        ],
    )
    app.state.settings = settings
    app.state.store = store
    app.state.coupon_rate_limit = coupon_rate_limiter(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api")

    @app.exception_handler(CouponError)
    async def coupon_error_handler(request: Request, exc: CouponError):
        if isinstance(exc, _INTERNAL_ERRORS):
            logger.error("coupon_internal_error", exc_info=exc, extra={"path": request.url.path})
            return _internal_error_response()
        payload = ErrorResponse(error=exc.error, message=exc.message, details=jsonable_encoder(exc.details))
        headers = None
        if isinstance(exc, RateLimited):
            payload.retry_after = f"{exc.window_seconds} seconds"
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=payload.payload(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(error=str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=payload.payload(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        payload = ErrorResponse(error="Validation error", details=jsonable_encoder(exc.errors()))
        return JSONResponse(status_code=422, content=payload.payload())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_error", exc_info=exc, extra={"path": request.url.path})
        return _internal_error_response()

    return app


app = get_application()
