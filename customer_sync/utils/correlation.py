"""
Request correlation IDs

Each inbound request gets an ID (reused from the X-Request-ID header when the
caller sends one) that is attached to every log record emitted while the
request is handled.
"""

import uuid
import contextvars
from typing import Mapping, Optional
import logging

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current context.

    Raises:
        ValueError: If correlation_id is empty or not a string
    """
    if not correlation_id or not isinstance(correlation_id, str):
        raise ValueError("Correlation ID must be a non-empty string")

    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def correlation_id_from_headers(headers: Mapping[str, str]) -> str:
    """
    Pick the caller's request ID or mint a new one.

    Header values longer than 128 characters are ignored.
    """
    incoming = (headers.get(REQUEST_ID_HEADER) or "").strip()

    if incoming and len(incoming) <= 128:
        return incoming

    return generate_correlation_id()


class CorrelationContext:
    """Context manager that scopes a correlation ID and restores the previous one."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> str:
        if not self.correlation_id:
            self.correlation_id = generate_correlation_id()

        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)


def correlation_id_filter(record):
    """Logging filter that stamps `correlation_id` on every record."""
    record.correlation_id = get_correlation_id() or "N/A"
    return True
