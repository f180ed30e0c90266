from __future__ import annotations

import os
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from expense_tracker.db.models import Base


def create_engine(db_url: str) -> AsyncEngine:
    """Builds the async engine; in-memory SQLite shares one connection."""
    kwargs: dict = {"echo": False, "future": True}
    if db_url.startswith("sqlite+"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    engine = create_async_engine(url=db_url, **kwargs)

    # SQLite tuning: WAL + foreign_keys
    if db_url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_conn, connection_record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute("PRAGMA synchronous=NORMAL;")
            cur.execute("PRAGMA foreign_keys=ON;")
            cur.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)


async def init_db(engine: AsyncEngine, db_url: str | None = None) -> None:
    # create the folder for file-based SQLite
    if db_url and db_url.startswith("sqlite+") and ":memory:" not in db_url:
        path = db_url.split("///", 1)[-1]
        d = os.path.dirname(path) or "."
        os.makedirs(d, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
