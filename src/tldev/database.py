from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tldev.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)

async_session = async_sessionmaker(engine, expire_on_commit=False)


async def dispose_after(coro):
    """Await ``coro``, then drop pooled connections.

    Celery tasks run each job in a fresh ``asyncio.run`` loop; asyncpg
    connections are bound to the loop that opened them and must not be
    reused from the next one.
    """
    try:
        return await coro
    finally:
        await engine.dispose()


def insert_for(db: AsyncSession, model):
    """INSERT construct supporting ON CONFLICT for the session's backend."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
