"""Health endpoints and request-scoped JSON logging for the order service."""

from .health import ServiceHealth, HealthStatus, check_result
from .logging_config import (
    setup_logging,
    get_logger,
    RequestLoggingMiddleware,
    set_request_context,
    clear_request_context,
    generate_request_id,
    LoggerAdapter,
)

__all__ = [
    "ServiceHealth",
    "HealthStatus",
    "check_result",
    "setup_logging",
    "get_logger",
    "RequestLoggingMiddleware",
    "set_request_context",
    "clear_request_context",
    "generate_request_id",
    "LoggerAdapter",
]
