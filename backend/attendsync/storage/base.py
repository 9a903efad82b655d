"""
Key/value persistence port.

Mirrors the browser's origin-scoped storage: string values under string
keys, plus change notifications that reach every *other* context
sharing the same storage, never the writer itself, and only when a
value actually changed.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageChange:
    key: str
    old_value: str | None
    new_value: str | None
    origin: str


StorageListener = Callable[[StorageChange], Awaitable[None]]


def new_context_id() -> str:
    return f"ctx_{uuid.uuid4().hex[:8]}"


class StorageChangeFeed:
    """Fan-out of storage changes to listeners of other contexts."""

    def __init__(self) -> None:
        self._listeners: list[tuple[str, StorageListener]] = []

    def register(self, context_id: str, listener: StorageListener) -> Callable[[], None]:
        entry = (context_id, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    async def dispatch(self, change: StorageChange) -> None:
        for context_id, listener in list(self._listeners):
            if context_id == change.origin:
                continue
            try:
                await listener(change)
            except Exception:
                logger.exception(
                    "Storage listener of %s failed on key '%s'", context_id, change.key
                )


class KeyValueStorage(ABC):
    """One context's view of a shared key/value store."""

    def __init__(self, feed: StorageChangeFeed | None = None, context_id: str | None = None) -> None:
        self.feed = feed or StorageChangeFeed()
        self.context_id = context_id or new_context_id()

    @abstractmethod
    async def _read(self, key: str) -> str | None: ...

    @abstractmethod
    async def _write(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...

    async def get(self, key: str) -> str | None:
        return await self._read(key)

    async def set(self, key: str, value: str) -> None:
        old = await self._read(key)
        await self._write(key, value)
        if old != value:
            await self.feed.dispatch(StorageChange(key, old, value, self.context_id))

    async def remove(self, key: str) -> None:
        old = await self._read(key)
        if old is None:
            return
        await self._delete(key)
        await self.feed.dispatch(StorageChange(key, old, None, self.context_id))

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Listen for changes made by other contexts. Returns an unsubscribe callable."""
        return self.feed.register(self.context_id, listener)
