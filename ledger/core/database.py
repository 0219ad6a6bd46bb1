from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ledger.core.config import settings


class Base(DeclarativeBase):
    pass


engine = create_async_engine(
    settings.database_url, echo=settings.database_echo, pool_pre_ping=True
)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request. Routers commit; anything raised rolls back."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
