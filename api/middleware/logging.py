"""
访问日志中间件

每个请求记录一条完成日志（方法、路径、状态码、耗时）。请求体从不记录：
支付、卡信息与网关回调的负载都属于敏感数据。
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
SLOW_REQUEST_SECONDS = 2.0


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration=round(time.perf_counter() - started, 4),
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - started
        response.headers["X-Process-Time"] = f"{duration:.3f}"

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
            log = logger.warning
        else:
            log = logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            query=str(request.url.query) or None,
            status_code=response.status_code,
            duration=round(duration, 4),
        )
        return response
