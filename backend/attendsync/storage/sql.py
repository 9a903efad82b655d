from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendsync.db.models import StorageEntry
from attendsync.storage.base import KeyValueStorage, StorageChangeFeed


class SqlStorage(KeyValueStorage):
    """Durable storage over the ``storage_entries`` table.

    Contexts that should see each other's changes must share ``feed``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: StorageChangeFeed | None = None,
        context_id: str | None = None,
    ) -> None:
        super().__init__(feed=feed, context_id=context_id)
        self._session_factory = session_factory

    async def _read(self, key: str) -> str | None:
        async with self._session_factory() as session:
            entry = await session.get(StorageEntry, key)
            return entry.value if entry is not None else None

    async def _write(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            entry = await session.get(StorageEntry, key)
            if entry is None:
                session.add(StorageEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def _delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(StorageEntry).where(StorageEntry.key == key))
            await session.commit()

    def open(self, context_id: str | None = None) -> "SqlStorage":
        """Another context's view of the same database and change feed."""
        return SqlStorage(self._session_factory, feed=self.feed, context_id=context_id)
