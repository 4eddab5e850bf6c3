from __future__ import annotations

import logging
import time
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.context import reset_correlation_id, reset_principal_id, set_correlation_id, set_principal_id
from app.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("app.request")

CORRELATION_HEADER = "x-correlation-id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the request and log and count it on the way out."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_token = set_correlation_id(correlation_id)
        principal_token = set_principal_id(None)

        span = trace.get_current_span()
        if span is not None and span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        method = request.method
        started = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                duration_ms = round((time.perf_counter() - started) * 1000, 2)
                path = resolve_http_path_label(request)
                observe_http_request(method=method, path=path, status=500, duration=duration_ms / 1000)
                logger.error(
                    "http.error",
                    exc_info=True,
                    extra={"method": method, "path": path, "status_code": 500, "duration_ms": duration_ms},
                )
                raise

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            path = resolve_http_path_label(request)
            observe_http_request(method=method, path=path, status=response.status_code, duration=duration_ms / 1000)
            logger.info(
                "http.request",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
        finally:
            reset_principal_id(principal_token)
            reset_correlation_id(correlation_token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
