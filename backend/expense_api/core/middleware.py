import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from expense_api.core.errors import RateLimitedError, error_body
from expense_api.core.rate_limit import RateLimiter
from expense_api.services.requester import get_client_ip, has_identity_signal

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limit for anonymous traffic.

    Requests carrying any identity header skip the limiter. Limiter backend
    failures are resolved inside ``RateLimiter.check`` as "allowed".
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        limit: int,
        window_seconds: int,
        retry_after_default: int = 10,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after_default = retry_after_default

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or has_identity_signal(request.headers):
            return await call_next(request)

        client_ip = get_client_ip(request)
        decision = await self.limiter.check(f"ip:{client_ip}", self.limit, self.window_seconds)
        if decision.allowed:
            return await call_next(request)

        exc = RateLimitedError(retry_after=decision.retry_after or self.retry_after_default)
        logger.info("Rate limited %s %s from %s", request.method, request.url.path, client_ip)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc, False), headers=exc.headers)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response
