"""Engine and session plumbing for the topic store.

Topics, their cached source metrics and the batch bookkeeping live in one
SQLite file, ~/.topic-indicators/topics.db unless DATA_DIR says otherwise.
TOPIC_INDICATORS_DB_URL replaces the whole URL (any async SQLAlchemy URL).
The weekly batch writes every topic while the MCP tools keep reading
rankings, so SQLite connections run in WAL mode.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.topic-indicators")
DB_FILENAME = "topics.db"

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_data_dir() -> Path:
    """Directory holding the topic database, created on first use."""
    data_dir = Path(os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_url() -> str:
    override = os.environ.get("TOPIC_INDICATORS_DB_URL")
    if override:
        return override
    return f"sqlite+aiosqlite:///{get_data_dir() / DB_FILENAME}"


def _tune_sqlite(dbapi_connection, connection_record):
    # Rankings reads must not block on a batch holding the write lock
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(db_url: str) -> AsyncEngine:
    """Async engine for db_url; SQLite URLs get the WAL pragmas on connect."""
    engine = create_async_engine(db_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _tune_sqlite)
    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine(get_db_url())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory used by TopicStore()."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create the topics and job_meta tables if missing."""
    from .sqlmodels import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    engine = get_engine()
    await create_tables(engine)
    logger.info("Topic store ready at %s", engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    """Dispose the engine; the next get_engine() call builds a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
