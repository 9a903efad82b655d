"""
Cross-context change notification.

Contexts share no memory, so notifications travel over one of two
transports behind a single ChangeNotificationChannel interface:

* PubSubChannel: a named same-origin bus, delivered to every other
  channel of that name, never echoed to the sender;
* StorageEventChannel: a write to a well-known storage key, seen by the
  other contexts through the storage change feed. The key is cleared
  right after the write so an identical message still registers as a
  change next time. The snapshot store's last-write marker is watched
  on the same channel.

Delivery is at-least-once with no ordering between the two channels;
receivers reload full state, so duplicates are harmless.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import ValidationError

from attendsync.core.config import settings
from attendsync.schemas.sync import SyncMessage
from attendsync.storage.base import KeyValueStorage, StorageChange
from attendsync.storage.snapshot_store import SYNC_MARKER_KEY

logger = logging.getLogger(__name__)

MessageHandler = Callable[[SyncMessage], Awaitable[None]]


class ChangeNotificationChannel(ABC):
    def __init__(self) -> None:
        self._handlers: list[MessageHandler] = []

    @abstractmethod
    async def publish(self, message: SyncMessage) -> None: ...

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _deliver(self, message: SyncMessage) -> None:
        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception:
                logger.exception(
                    "Notification handler failed on %s (%s)", message.type, type(self).__name__
                )

    async def close(self) -> None:
        self._handlers.clear()


class BroadcastHub:
    """Same-origin pub/sub bus shared by the contexts of one process."""

    def __init__(self) -> None:
        self._channels: dict[str, list[PubSubChannel]] = {}

    def attach(self, channel: PubSubChannel) -> None:
        self._channels.setdefault(channel.name, []).append(channel)

    def detach(self, channel: PubSubChannel) -> None:
        members = self._channels.get(channel.name, [])
        if channel in members:
            members.remove(channel)

    async def deliver(self, sender: PubSubChannel, message: SyncMessage) -> None:
        for channel in list(self._channels.get(sender.name, [])):
            if channel is sender:
                continue
            await channel._deliver(message)


class PubSubChannel(ChangeNotificationChannel):
    def __init__(self, hub: BroadcastHub, name: str | None = None) -> None:
        super().__init__()
        self.hub = hub
        self.name = name or settings.BROADCAST_CHANNEL_NAME
        self.closed = False
        hub.attach(self)

    async def publish(self, message: SyncMessage) -> None:
        if self.closed:
            logger.warning("Publish on closed channel '%s' dropped (%s)", self.name, message.type)
            return
        await self.hub.deliver(self, message)

    async def close(self) -> None:
        self.closed = True
        self.hub.detach(self)
        await super().close()


class StorageEventChannel(ChangeNotificationChannel):
    def __init__(
        self,
        storage: KeyValueStorage,
        key: str | None = None,
        marker_key: str = SYNC_MARKER_KEY,
    ) -> None:
        super().__init__()
        self.storage = storage
        self.key = key or settings.SYSTEM_EVENT_KEY
        self.marker_key = marker_key
        self._unsubscribe = storage.subscribe(self._on_change)

    async def publish(self, message: SyncMessage) -> None:
        await self.storage.set(self.key, message.model_dump_json())
        await self.storage.remove(self.key)

    async def _on_change(self, change: StorageChange) -> None:
        if change.new_value is None:
            return
        if change.key == self.key:
            try:
                message = SyncMessage.model_validate_json(change.new_value)
            except ValidationError:
                logger.warning("Unreadable message on storage key '%s' ignored", self.key)
                return
        elif change.key == self.marker_key:
            try:
                marker = json.loads(change.new_value)
            except ValueError:
                logger.warning("Unreadable last-write marker ignored")
                return
            if not isinstance(marker, dict):
                return
            message = SyncMessage(type="dataSync", data=marker, source=str(marker.get("source", "")))
        else:
            return
        await self._deliver(message)

    async def close(self) -> None:
        self._unsubscribe()
        await super().close()


class CrossContextBroadcaster:
    """Publishes on every channel and hides a context's own messages from it."""

    def __init__(self, channels: Sequence[ChangeNotificationChannel], source: str) -> None:
        self.channels = list(channels)
        self.source = source

    async def broadcast(self, event_type: str, data: dict[str, Any] | None = None) -> SyncMessage:
        message = SyncMessage(type=event_type, data=data or {}, source=self.source)
        for channel in self.channels:
            try:
                await channel.publish(message)
            except Exception as exc:
                logger.warning(
                    "Broadcast of %s over %s failed: %s", event_type, type(channel).__name__, exc
                )
        return message

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        async def from_others(message: SyncMessage) -> None:
            if message.source == self.source:
                return
            await handler(message)

        unsubscribers = [channel.subscribe(from_others) for channel in self.channels]

        def unsubscribe() -> None:
            for unsubscribe_one in unsubscribers:
                unsubscribe_one()

        return unsubscribe

    async def close(self) -> None:
        for channel in self.channels:
            await channel.close()
