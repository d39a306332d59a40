"""
Request Logging Middleware
==========================

Logs every HTTP request with its status and duration.

Written as a plain ASGI middleware rather than with ``@app.middleware``
so that producer upload bodies keep streaming straight through to the
endpoint and client disconnects reach it unchanged.
"""

import logging
import time


logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """ASGI middleware logging method, path, client, status and duration."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        method = scope.get("method", "?")
        path = scope.get("path", "?")
        client = scope.get("client")
        remote = client[0] if client else "unknown"
        status = {"code": None}

        logger.info(f"{method} {path} from {remote}")

        async def send_wrapper(message) -> None:
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            if status["code"] is None:
                logger.info(
                    f"{method} {path} -> connection closed "
                    f"({duration_ms:.0f}ms)"
                )
            else:
                logger.info(
                    f"{method} {path} -> {status['code']} ({duration_ms:.0f}ms)"
                )
