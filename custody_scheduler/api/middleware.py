"""
Request tracking for the HTTP layer.

Every request gets an ID (the caller's X-Request-ID if sent, otherwise a
short generated one). The ID is held in a context variable so log records
emitted by the engine during the request carry it too.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def get_request_id() -> str:
    return request_id_ctx.get()


class RequestIdLogFilter(logging.Filter):
    """Stamp log records with the current request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Root logging with request IDs in every line. Safe to call repeatedly."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
    for handler in root.handlers:
        if not any(isinstance(f, RequestIdLogFilter) for f in handler.filters):
            handler.addFilter(RequestIdLogFilter())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request with its acting user, outcome and duration.

    Sets X-Request-ID and X-Response-Time on the response.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        token = request_id_ctx.set(req_id)
        actor = request.headers.get("X-User-ID", "anonymous")
        started = time.perf_counter()

        logger.info(
            f"{request.method} {request.url.path} by {actor}",
            extra={"method": request.method, "path": request.url.path, "actor_id": actor},
        )
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                f"{request.method} {request.url.path} failed after "
                f"{(time.perf_counter() - started) * 1000:.1f}ms"
            )
            raise
        finally:
            request_id_ctx.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms",
            extra={"request_id": req_id, "status_code": response.status_code, "elapsed_ms": elapsed_ms},
        )
        response.headers["X-Request-ID"] = req_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        return response
