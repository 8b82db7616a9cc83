"""
Upper bound on request duration.

A request that is still running after ``timeout_seconds`` is abandoned and
answered with 504. Events already acknowledged by then are durable; the
caller only loses the response. Liveness checks are exempt.
"""

import asyncio

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class TimeoutMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        timeout_seconds: float = 30.0,
        exempt_paths: tuple[str, ...] = ("/health",),
    ):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.exempt_paths = exempt_paths

    def _is_exempt(self, path: str) -> bool:
        return path.startswith(self.exempt_paths)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if self._is_exempt(path):
            return await call_next(request)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call_next(request)
        except TimeoutError:
            get_metrics().record_request_timeout(request.method)
            logger.warning(
                "Request abandoned after timeout",
                method=request.method,
                path=path,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={
                    "detail": f"Request exceeded {self.timeout_seconds}s",
                    "timeout_seconds": self.timeout_seconds,
                },
            )
