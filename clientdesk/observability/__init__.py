"""
Logging setup and per-request context (request ID plus acting user).

    from clientdesk.observability import configure_logging, RequestContext

    configure_logging("INFO")
    with RequestContext(user="cli"):
        logger.info("Generating invoices")
"""

from .context import (
    RequestContext,
    RequestInfo,
    bind_user,
    current_request,
    generate_request_id,
    get_request_id,
    get_user,
)
from .logging import CorrelationIdMiddleware, HumanFormatter, JSONFormatter, configure_logging

__all__ = [
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    "CorrelationIdMiddleware",
    "RequestContext",
    "RequestInfo",
    "bind_user",
    "current_request",
    "generate_request_id",
    "get_request_id",
    "get_user",
]
