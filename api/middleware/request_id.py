"""
Request ID 中间件

生成或透传追踪ID，绑定到 structlog contextvars；同一请求内的所有日志
（包括订单状态迁移与网关调用）都会带上 request_id / client_ip。
"""
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


MAX_REQUEST_ID_LENGTH = 128


def _usable_request_id(value: Optional[str]) -> bool:
    return bool(value) and len(value) <= MAX_REQUEST_ID_LENGTH and value.isascii() and value.isprintable()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """从 X-Request-ID 取追踪ID（不合法则重新生成），并回写到响应头"""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME)
        if not _usable_request_id(request_id):
            request_id = str(uuid.uuid4())

        client_ip = _client_ip(request)
        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, client_ip=client_ip)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def _client_ip(request: Request) -> str:
    # 仅用于日志；X-Forwarded-For 可伪造，回调白名单只看 socket 对端地址
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
