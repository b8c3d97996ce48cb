from __future__ import annotations

from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
import uuid

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_RESOURCE_KEY: ContextVar[str | None] = ContextVar("resource_key", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def get_resource_key() -> str | None:
    return _RESOURCE_KEY.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Binds a correlation id and the resource key for the duration of one sync job.

    A fresh id is generated unless the caller hands over the one it already carries.
    """

    def __init__(self, resource_key: str, correlation_id: str | None = None) -> None:
        self.resource_key = resource_key
        self.correlation_id = correlation_id or generate_correlation_id()
        self._correlation_token: Token[str | None] | None = None
        self._resource_token: Token[str | None] | None = None

    def __enter__(self) -> "OperationContext":
        self._correlation_token = set_correlation_id(self.correlation_id)
        self._resource_token = _RESOURCE_KEY.set(self.resource_key)
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._resource_token is not None:
            _RESOURCE_KEY.reset(self._resource_token)
        if self._correlation_token is not None:
            reset_correlation_id(self._correlation_token)
        return None
