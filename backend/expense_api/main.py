import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_api.core.config import Settings, load_settings
from expense_api.core.errors import ValidationError, error_body
from expense_api.core.log import configure_logging
from expense_api.core.middleware import RateLimitMiddleware, RequestLogMiddleware
from expense_api.core.rate_limit import RateLimiter
from expense_api.db.pool import close_db_pool, create_db_pool, open_db_pool
from expense_api.db.schema import init_schema
from expense_api.routers.rates import router as rates_router
from expense_api.routers.transactions import router as transactions_router
from expense_api.routers.users import router as users_router
from expense_api.services.ledger import LedgerService
from expense_api.services.rates import RatesService
from expense_api.services.requester import DEV_ID_HEADERS
from expense_api.services.users import IdentitySync, UserService

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "Accept", *DEV_ID_HEADERS]
CORS_ALLOW_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"]


def create_app(
    settings: Settings | None = None,
    *,
    ledger: LedgerService | None = None,
    users: UserService | None = None,
    rates: RatesService | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Build the API. Services passed in are used as-is; the rest are built in the lifespan."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    limiter = rate_limiter or RateLimiter(
        redis_url=settings.redis_url,
        key_prefix=settings.redis_prefix,
        socket_timeout=settings.redis_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = None
        http = httpx.AsyncClient(follow_redirects=True)
        try:
            if ledger is None or users is None:
                pool = create_db_pool(settings)
                await open_db_pool(pool)
                await init_schema(pool)
            if ledger is None:
                app.state.ledger = LedgerService(pool)
            if users is None:
                identity = IdentitySync(http, settings.clerk_api_url, settings.clerk_secret_key, settings.rates_timeout)
                app.state.users = UserService(pool, identity)
            if rates is None:
                app.state.rates = RatesService(http, settings.exchange_api_key, settings.rates_timeout)
            logger.info(
                "API started (env=%s, rate limit %s, limiter store=%s)",
                settings.environment,
                "on" if settings.rate_limit_enabled else "off",
                "redis" if limiter.uses_redis else "memory",
            )
            yield
        finally:
            await http.aclose()
            await limiter.close()
            if pool is not None:
                await close_db_pool(pool)

    app = FastAPI(title="Expense Tracker API", lifespan=lifespan)
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.users = users
    app.state.rates = rates
    app.state.rate_limiter = limiter

    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=limiter,
            limit=settings.rate_limit,
            window_seconds=settings.rate_limit_window,
            retry_after_default=settings.retry_after_default,
        )
    app.add_middleware(RequestLogMiddleware)
    cors_origins = {"allow_origins": list(settings.cors_allow_origins)} if settings.cors_allow_origins else {"allow_origin_regex": ".*"}
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=["Retry-After"],
        **cors_origins,
    )

    for prefix in ("", "/api"):
        app.include_router(transactions_router, prefix=prefix)
        app.include_router(users_router, prefix=prefix)
        app.include_router(rates_router, prefix=prefix)

    @app.get("/", response_class=PlainTextResponse)
    async def welcome():
        return "Welcome to the Transactions API!"

    @app.get("/health")
    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc, include_details=not settings.is_production),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(req: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", req.method, req.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(_: Request, exc: RequestValidationError):
        fields = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "path", "query")]
            name = ".".join(loc) or "body"
            if name not in fields:
                fields.append(name)
        error = ValidationError(f"Invalid request: {', '.join(fields)}", fields=fields)
        return JSONResponse(status_code=error.status_code, content=error_body(error, include_details=False))

    return app


app = create_app()
