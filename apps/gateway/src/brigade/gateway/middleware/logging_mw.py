"""LoggingMiddleware -- 请求级日志

每个请求生成 request_id，连同调用者身份绑定到 structlog contextvars，
服务层日志因此自动带上 user_id / restaurant_id。探针路径不记录。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

_QUIET_PATHS = frozenset({"/health", "/ready"})


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(ULID())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=request.headers.get("X-User-Id"),
            role=request.headers.get("X-User-Role"),
            restaurant_id=request.headers.get("X-Restaurant-Id"),
        )

        quiet = request.url.path in _QUIET_PATHS
        log = structlog.get_logger()
        started = time.monotonic()
        if not quiet:
            await log.ainfo("request_started", method=request.method, path=request.url.path)

        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if response.status_code >= 500:
            await log.aerror(
                "request_failed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=elapsed_ms,
            )
        elif not quiet:
            await log.ainfo(
                "request_completed",
                status_code=response.status_code,
                duration_ms=elapsed_ms,
            )

        response.headers["X-Request-ID"] = request_id
        return response
