"""
Shared plumbing for the MongoDB repositories.

Every public repository coroutine is wrapped with ``store_operation`` so a
timeout or lost connection reaches the service layer as TransientStoreError
(HTTP 500) instead of a raw pymongo exception. Logical failures such as
DuplicateKeyError are left for the repository method to translate.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, TypeVar

from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    ExecutionTimeout,
    NetworkTimeout,
    ServerSelectionTimeoutError,
    WTimeoutError,
)

from errors import TransientStoreError
from shared.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    AutoReconnect,
    ConnectionFailure,
    ExecutionTimeout,
    NetworkTimeout,
    ServerSelectionTimeoutError,
    WTimeoutError,
)


def store_operation(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Map transient pymongo failures raised by *func* to TransientStoreError."""

    @functools.wraps(func)
    async def wrapper(self, *args: Any, **kwargs: Any) -> T:
        try:
            return await func(self, *args, **kwargs)
        except TRANSIENT_ERRORS as e:
            log.error(
                "store_operation_failed",
                collection=self.collection_name,
                operation=func.__name__,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransientStoreError(
                "the data store is temporarily unavailable, please retry"
            ) from e

    return wrapper


class BaseRepository:
    """Holds one collection handle. Subclasses set ``collection_name``."""

    collection_name: str = ""

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    @classmethod
    def from_db(cls, db) -> "BaseRepository":
        return cls(db[cls.collection_name])
