"""
FastAPI middleware for request logging and structlog context management.

Provides:
- A request ID per request, returned to the client as ``X-Request-ID``
- request_id / method / path / hashed client IP bound into structlog
  contextvars for every log line emitted while the request is handled
- A completion log line with status code and duration
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import FastAPI, Request

from shared.logging import get_logger, hash_ip

_PROXY_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return f"req_{uuid.uuid4().hex[:12]}"


def get_client_ip(request: Request) -> str:
    """Resolve the client IP, preferring the first address from proxy headers."""
    for header in _PROXY_HEADERS:
        value = request.headers.get(header)
        if value:
            ip = value.split(",")[0].strip()
            if ip:
                return ip
    return request.client.host if request.client else ""


def setup_logging_middleware(app: FastAPI) -> None:
    """Register the request logging middleware on *app*."""
    log = get_logger("poemvy.request")

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        started = time.perf_counter()
        request_id = generate_request_id()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            ip_hash=hash_ip(get_client_ip(request)),
        )

        try:
            response = await call_next(request)
        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)

        status_code = response.status_code
        if status_code >= 500:
            log_fn = log.error
        elif status_code >= 400:
            log_fn = log.warning
        else:
            log_fn = log.info
        log_fn("request_completed", status_code=status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.clear_contextvars()
        return response
