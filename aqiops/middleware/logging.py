"""Structured event logging and HTTP request logging.

Every event is one JSON object on the ``aqiops`` logger.  Credentials
never reach the log: the admin ``x-api-key`` header and the provider
``key`` query parameter (IQAir sends it in the URL) are redacted both in
inbound request logs and in outbound ``upstream_request`` events.
"""

import json
import logging
import time
import uuid
from typing import Any, Callable, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


LOG = logging.getLogger("aqiops")
if not LOG.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    handler.setFormatter(formatter)
    LOG.addHandler(handler)
LOG.setLevel(logging.INFO)

REDACTED = "<redacted>"
SENSITIVE_HEADERS = frozenset({"authorization", "x-api-key", "cookie"})
SENSITIVE_PARAMS = frozenset({"key", "api_key", "token"})


def configure_logging(level: str) -> None:
    """Set the service log level, ignoring unknown level names."""
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, int):
        LOG.setLevel(resolved)


def _emit(level: int, event: str, fields: Mapping[str, Any]) -> None:
    if LOG.isEnabledFor(level):
        payload = {"level": logging.getLevelName(level).lower(), "event": event, **fields}
        LOG.log(level, json.dumps(payload, default=str))


def log_info(event: str, **kwargs: Any) -> None:
    """Log an informational event as structured JSON."""
    _emit(logging.INFO, event, kwargs)


def log_warning(event: str, **kwargs: Any) -> None:
    """Log a warning event as structured JSON."""
    _emit(logging.WARNING, event, kwargs)


def log_error(event: str, **kwargs: Any) -> None:
    """Log an error event as structured JSON."""
    _emit(logging.ERROR, event, kwargs)


def redact_headers(headers: Mapping[str, Any]) -> dict:
    return {k: (REDACTED if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}


def redact_params(params: Mapping[str, Any]) -> dict:
    """Copy of query parameters with credentials masked."""
    return {k: (REDACTED if k.lower() in SENSITIVE_PARAMS else v) for k, v in params.items()}


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log one ``http_request`` event per request and echo ``x-request-id``."""

    def __init__(self, app, max_body: int = 2048) -> None:
        super().__init__(app)
        self.max_body = max_body

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.perf_counter()

        # Batch and collection bodies are small JSON documents.
        body_preview = ""
        if request.method in {"POST", "PUT", "PATCH"}:
            raw = await request.body()
            body_preview = raw[: self.max_body].decode("utf-8", errors="replace")

        response = await call_next(request)

        log_info(
            "http_request",
            request_id=rid,
            method=request.method,
            path=request.url.path,
            query=redact_params(request.query_params),
            headers=redact_headers(request.headers),
            body_preview=body_preview,
            status=response.status_code,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )
        response.headers["x-request-id"] = rid
        return response
