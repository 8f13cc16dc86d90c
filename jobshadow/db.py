from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory_sqlite(url: str) -> bool:
    return _is_sqlite(url) and (url.rstrip("/").endswith(":") or ":memory:" in url)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build the async engine; sqlite gets foreign keys switched on."""
    kwargs = {"echo": echo}
    if _is_sqlite(database_url):
        kwargs["connect_args"] = {"check_same_thread": False}
    if _is_memory_sqlite(database_url):
        # every session has to see the same in-memory database
        kwargs["poolclass"] = StaticPool

    engine = create_async_engine(database_url, **kwargs)

    if _is_sqlite(database_url):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
