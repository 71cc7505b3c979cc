from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from mindease.db.base import Base
from mindease.db import models  # noqa: F401


def make_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(url, echo=False, future=True)
    if url.startswith("sqlite"):
        # SQLite leaves foreign keys off unless asked, and ON DELETE CASCADE needs them
        @event.listens_for(engine.sync_engine, "connect")
        def _fk_pragma(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
