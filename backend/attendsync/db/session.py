from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from attendsync.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


def storage_session_factory(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Session factory for a durable local snapshot store."""
    storage_engine = create_async_engine(url or settings.STORAGE_DATABASE_URL, echo=False)
    return async_sessionmaker(storage_engine, class_=AsyncSession, expire_on_commit=False)
