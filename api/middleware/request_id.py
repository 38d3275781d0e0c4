"""
请求上下文中间件

为每个请求确定追踪 ID 与客户端 IP：两者写入 request.state 供路由使用
（结账与支付请求会记录下单 IP），同时绑定到 structlog 上下文。
"""
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings

# 反向代理常用的转发头，按优先级排列
FORWARDED_HEADERS = ("X-Forwarded-For", "X-Real-IP")


def resolve_client_ip(request: Request, trust_proxy: bool = True) -> Optional[str]:
    """取原始客户端 IP；不信任代理时只看 TCP 对端"""
    if trust_proxy:
        for header in FORWARDED_HEADERS:
            value = request.headers.get(header)
            if value:
                return value.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """透传或生成 X-Request-ID，并在响应头中回写"""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or uuid.uuid4().hex
        client_ip = resolve_client_ip(request, settings.TRUST_PROXY_HEADERS)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, client_ip=client_ip)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response
