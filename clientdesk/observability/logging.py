"""
Log formatting for ClientDesk: JSON lines for servers, plain lines for a TTY.

Both formatters tag each line with the request ID and acting user bound in
observability.context. Fields passed through ``extra=`` end up as top-level
JSON keys.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .context import RequestContext, current_request, generate_request_id

# Attributes every LogRecord has; anything else came from extra=
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:

        {"timestamp": "2024-03-01T09:00:00.000Z", "level": "INFO",
         "logger": "clientdesk.reconciliation", "message": "Payment 7 ...",
         "request_id": "req-...", "user": "admin", "client_id": 3}
    """

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        info = current_request()
        if info is not None:
            payload["request_id"] = info.request_id
            if info.user:
                payload["user"] = info.user

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """``2024-03-01 09:00:00 INFO clientdesk.billing [req-1a2b3c4d admin] message``"""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        info = current_request()
        tag = ""
        if info is not None:
            tag = f"[{info.request_id[:12]}{' ' + info.user if info.user else ''}] "
        line = f"{stamp} {record.levelname:<7} {record.name}: {tag}{record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = "INFO", json_format: bool | None = None) -> None:
    """
    Replace the root handlers with a single stderr handler.

    Args:
        level: Level name, e.g. "DEBUG"
        json_format: JSON lines when True; when None, JSON unless stderr is a TTY
    """
    if json_format is None:
        json_format = not sys.stderr.isatty()

    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root.addHandler(handler)


def _header(scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1") or None
    return None


class CorrelationIdMiddleware:
    """
    ASGI middleware: one RequestContext per HTTP request.

    Reuses an incoming X-Request-ID (so a proxy's ID shows up in our logs)
    and sends the ID back in the response headers.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _header(scope, b"x-request-id") or generate_request_id()

        async def send_with_id(message):
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-id", request_id.encode("latin-1")),
                ]
            await send(message)

        with RequestContext(request_id=request_id):
            await self.app(scope, receive, send_with_id)
