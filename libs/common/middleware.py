"""Request logging middleware for the orders API.

Every request gets an ``X-Request-ID`` (taken from the caller or generated) that
is bound to the logging context and echoed on the response. Guest lookup
tokens, emails and Stripe session ids travel in query strings, so those values
are masked before the query is logged.
"""
import time
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/health"})
REDACTED_QUERY_PARAMS = frozenset({"token", "email", "session_id"})


def redact_query(query: str) -> Optional[str]:
    """Mask sensitive query parameter values; ``None`` for an empty query."""
    if not query:
        return None
    pairs = [
        (key, "***" if key in REDACTED_QUERY_PARAMS else value)
        for key, value in parse_qsl(query, keep_blank_values=True)
    ]
    return urlencode(pairs, safe="*")


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        quiet = request.url.path in QUIET_PATHS
        started = time.perf_counter()

        try:
            if not quiet:
                logger.info(
                    "Request started",
                    extra={"extra_fields": {"query": redact_query(request.url.query)}},
                )

            try:
                response = await call_next(request)
            except Exception as e:
                logger.exception(
                    "Request failed with unhandled exception",
                    extra={
                        "extra_fields": {
                            "error": str(e),
                            "duration_ms": _elapsed_ms(started),
                        }
                    },
                )
                raise

            if not quiet:
                # 4xx/5xx at warning
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "Request completed",
                    extra={
                        "extra_fields": {
                            "status_code": response.status_code,
                            "duration_ms": _elapsed_ms(started),
                        }
                    },
                )

            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def add_observability_middleware(app: FastAPI) -> None:
    """Configure logging and install the request context middleware."""
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
    logger.info("Observability middleware initialized")
