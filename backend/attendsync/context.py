"""Wiring for one execution context: store, notification channels and engine."""

from typing import Any

from attendsync.services.reconciliation import ReconciliationEngine
from attendsync.storage.base import KeyValueStorage
from attendsync.storage.snapshot_store import SnapshotStore
from attendsync.sync.broadcaster import (
    BroadcastHub,
    ChangeNotificationChannel,
    CrossContextBroadcaster,
    PubSubChannel,
    StorageEventChannel,
)
from attendsync.sync.remote_client import SyncTransport


def open_context(
    storage: KeyValueStorage,
    hub: BroadcastHub | None = None,
    *,
    client: SyncTransport | None = None,
    channel_name: str | None = None,
    **engine_options: Any,
) -> ReconciliationEngine:
    """
    Build an engine for the context that owns ``storage``.

    Notifications go out over the hub's pub/sub channel (when a hub is
    given) and over the storage-event fallback. The engine is returned
    uninitialized; await ``engine.initialize()`` before use.
    """
    channels: list[ChangeNotificationChannel] = []
    if hub is not None:
        channels.append(PubSubChannel(hub, channel_name))
    channels.append(StorageEventChannel(storage))

    broadcaster = CrossContextBroadcaster(channels, source=storage.context_id)
    return ReconciliationEngine(
        SnapshotStore(storage),
        client,
        broadcaster,
        context_id=storage.context_id,
        **engine_options,
    )
