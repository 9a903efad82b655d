from attendsync.storage.base import KeyValueStorage, StorageChangeFeed


class MemoryOrigin:
    """In-process stand-in for one origin's storage, shared by its contexts."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})
        self.feed = StorageChangeFeed()

    def open(self, context_id: str | None = None) -> "MemoryStorage":
        return MemoryStorage(self, context_id=context_id)


class MemoryStorage(KeyValueStorage):
    def __init__(self, origin: MemoryOrigin | None = None, context_id: str | None = None) -> None:
        self.origin = origin or MemoryOrigin()
        super().__init__(feed=self.origin.feed, context_id=context_id)

    async def _read(self, key: str) -> str | None:
        return self.origin.data.get(key)

    async def _write(self, key: str, value: str) -> None:
        self.origin.data[key] = value

    async def _delete(self, key: str) -> None:
        self.origin.data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self.origin.data)
