"""
Per-request log context: who is acting and under which request ID.

The API binds one RequestInfo per HTTP request (CorrelationIdMiddleware) and
fills in the user once require_auth resolves it. CLI jobs bind their own.
"""

import contextvars
import dataclasses
import uuid
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestInfo:
    request_id: str
    user: Optional[str] = None


_current: contextvars.ContextVar[Optional[RequestInfo]] = contextvars.ContextVar(
    "clientdesk_request", default=None
)


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:16]}"


def current_request() -> Optional[RequestInfo]:
    return _current.get()


def get_request_id() -> Optional[str]:
    info = _current.get()
    return info.request_id if info else None


def get_user() -> Optional[str]:
    info = _current.get()
    return info.user if info else None


def bind_user(username: str) -> None:
    """Attach the authenticated username to the current request, if any."""
    info = _current.get()
    if info is not None and info.user != username:
        _current.set(dataclasses.replace(info, user=username))


class RequestContext:
    """
    Bind a RequestInfo for the duration of a block.

        with RequestContext(user="cli"):
            generate_monthly_invoices(2024, 3)   # log lines carry id and user

    Exiting restores whatever was bound before, including a user bound
    inside the block.
    """

    def __init__(self, request_id: Optional[str] = None, user: Optional[str] = None):
        self.info = RequestInfo(request_id or generate_request_id(), user)
        self._token: Optional[contextvars.Token] = None

    @property
    def request_id(self) -> str:
        return self.info.request_id

    def __enter__(self) -> "RequestContext":
        self._token = _current.set(self.info)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _current.reset(self._token)
            self._token = None
