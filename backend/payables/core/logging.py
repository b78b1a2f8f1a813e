from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, Response
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from payables.core.security import decode_token


# Attributes passed through ``extra=`` that end up in the JSON line.
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "role",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "operation",
    "error_kind",
)


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str = "payables") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
    # RequestLoggingMiddleware already writes one line per request.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _token_claims(request: Request) -> tuple[Optional[int], Optional[str]]:
    """Best-effort (user_id, role) from the bearer token, for log context only."""
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None, None
    try:
        claims = decode_token(token.strip())
        user_id = claims.get("sub")
        return (int(user_id) if user_id is not None else None), claims.get("role")
    except (JWTError, ValueError, TypeError):
        return None, None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)
        self.security_logger = logging.getLogger("security")

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        user_id, role = _token_claims(request)
        context = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "user_id": user_id,
            "role": role,
        }
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            context["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            self.logger.exception("unhandled_exception", extra=context)
            raise

        context.update(
            status_code=response.status_code,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        self.logger.info("request", extra=context)
        if response.status_code == 403 and user_id is not None:
            self.security_logger.info("forbidden", extra=context)

        response.headers["X-Request-Id"] = request_id
        return response
