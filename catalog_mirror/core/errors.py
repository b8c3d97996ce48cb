from __future__ import annotations

from collections.abc import Iterable


class AppError(Exception):
    pass


class DataError(AppError):
    """Remote payload or query parameters that cannot be mirrored as-is."""


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class TransientStoreError(PersistenceError):
    pass


class NotFoundError(PersistenceError):
    def __init__(self, message: str, missing_ids: Iterable[object] = ()) -> None:
        self.missing_ids = tuple(missing_ids)
        detail = ", ".join(str(item) for item in self.missing_ids)
        super().__init__(f"{message}: {detail}" if detail else message)


class ExternalServiceError(InfraError):
    pass


class NetworkError(ExternalServiceError):
    pass
