"""
JSON logging with request and tenant context

Every line carries the request, correlation, user and tenant identifiers
of the request that produced it, so one order can be followed through the
courier, ledger, catalog and webhook calls it triggers.
"""

import json
import logging
import os
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)
client_id_var: ContextVar[Optional[str]] = ContextVar('client_id', default=None)

_CONTEXT_VARS = (
    ('request_id', request_id_var),
    ('correlation_id', correlation_id_var),
    ('user_id', user_id_var),
    ('client_id', client_id_var),
)

# promoted out of extra_fields so log search can key on them directly
_TOP_LEVEL_FIELDS = ('order_id', 'order_ids')

def _current_context() -> Dict[str, str]:
    return {key: var.get() for key, var in _CONTEXT_VARS if var.get()}

class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": os.getenv('SERVICE_NAME', 'orderhub'),
            "environment": os.getenv('ENVIRONMENT', 'development'),
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno} in {record.funcName}",
        }

        context = _current_context()
        if context:
            entry["trace"] = context

        fields = getattr(record, 'extra_fields', None)
        if isinstance(fields, dict) and fields:
            fields = dict(fields)
            for key in _TOP_LEVEL_FIELDS:
                if key in fields:
                    entry[key] = fields.pop(key)
            if fields:
                entry["custom"] = fields

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(entry, default=str)

class SecurityFilter(logging.Filter):
    """Redact credentials from the structured fields of a record.

    Courier API keys and catalog credentials travel through the order
    workflows; they must never reach the log sink.
    """

    SENSITIVE_FIELDS = (
        'password', 'token', 'api_key', 'apikey', 'x-api-key', 'secret',
        'authorization', 'cookie', 'session'
    )

    def filter(self, record: logging.LogRecord) -> bool:
        fields = getattr(record, 'extra_fields', None)
        if isinstance(fields, dict):
            record.extra_fields = self._redact(fields)
        return True

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            redacted = {}
            for key, item in value.items():
                if any(marker in str(key).lower() for marker in self.SENSITIVE_FIELDS):
                    redacted[key] = "***REDACTED***"
                else:
                    redacted[key] = self._redact(item)
            return redacted
        if isinstance(value, list):
            return [self._redact(item) for item in value]
        return value

def setup_logging(service_name: str, level: str = "INFO", stream=None) -> None:
    """
    Route every logger through one JSON handler

    Args:
        service_name: Name reported in every log line
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, stdout unless given
    """
    os.environ['SERVICE_NAME'] = service_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(SecurityFilter())
    root_logger.addHandler(handler)

    # Request/response bodies of the courier and catalog clients stay out of the log
    for noisy in ('uvicorn', 'httpx', 'httpcore', 'sqlalchemy.engine', 'alembic'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level}}
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Injects the request context into the `extra` of every call."""

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})
        for key, var in _CONTEXT_VARS:
            value = var.get()
            if value:
                extra[key] = value
        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})

def set_request_context(
    request_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    client_id: Optional[str] = None
) -> None:
    """
    Bind tracing and tenant identifiers to the current context

    Arguments left as None keep their current value.
    """
    values = {
        'request_id': request_id,
        'correlation_id': correlation_id,
        'user_id': user_id,
        'client_id': client_id,
    }
    for key, var in _CONTEXT_VARS:
        if values[key]:
            var.set(values[key])

def clear_request_context() -> None:
    """Forget everything bound by a previous request on this context"""
    for _, var in _CONTEXT_VARS:
        var.set(None)

def generate_request_id() -> str:
    return str(uuid.uuid4())

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with its outcome and duration, and echoes the
    request id back in X-Request-ID. The acting user and tenant are bound
    later, once the bearer token has been decoded.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        clear_request_context()
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        set_request_context(
            request_id=request_id,
            correlation_id=request.headers.get('X-Correlation-ID'),
        )

        logger = get_logger(__name__)
        route = f"{request.method} {request.url.path}"
        fields = {'method': request.method, 'path': request.url.path}
        logger.info(
            f"Request started: {route}",
            extra={'extra_fields': {**fields, 'client_host': request.client.host if request.client else None}}
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"Request failed: {route}",
                exc_info=True,
                extra={'extra_fields': {**fields, 'duration_ms': (time.perf_counter() - started) * 1000}}
            )
            raise

        logger.info(
            f"Request completed: {route}",
            extra={'extra_fields': {
                **fields,
                'status_code': response.status_code,
                'duration_ms': (time.perf_counter() - started) * 1000,
            }}
        )
        response.headers['X-Request-ID'] = request_id
        return response
