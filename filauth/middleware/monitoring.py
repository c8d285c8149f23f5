"""Request logging and request deadlines"""
import asyncio
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from filauth.utils.logger import logger

SLOW_REQUEST_SECONDS = 1.0


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs slow or failed ones"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        method = request.method
        path = request.url.path

        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {method} {path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration": time.time() - start_time,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {method} {path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration": duration,
                    "status": response.status_code,
                },
            )
        elif response.status_code >= 500:
            logger.error(
                f"Request errored: {method} {path}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration": duration,
                    "status": response.status_code,
                },
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        return response


class DeadlineMiddleware:
    """Cancel requests that run longer than ``timeout`` seconds.

    A request cut off before its response started gets a 504; one cut off
    mid-stream is simply closed.
    """

    def __init__(self, app: ASGIApp, timeout: float):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.timeout:
            await self.app(scope, receive, send)
            return

        started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Request timed out after {self.timeout}s",
                extra={"path": scope.get("path"), "method": scope.get("method")},
            )
            if started:
                return
            response = JSONResponse(status_code=504, content={"error": "request timeout"})
            await response(scope, receive, send)
