from collections.abc import Awaitable, Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


def configure_sqlite(engine) -> None:
    """
    Make SQLite behave like the production database for this app.

    - ``PRAGMA foreign_keys`` is per connection; without it ``ON DELETE
      CASCADE`` is ignored.
    - The driver's implicit BEGIN handling is switched off and BEGIN is
      emitted explicitly, otherwise SAVEPOINTs (``begin_nested``) are not
      scoped inside the session transaction.

    Other backends are left untouched.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


configure_sqlite(engine)


async def create_tables() -> None:
    """Create every table known to ``Base.metadata`` (no-op for existing ones)."""
    import conduit.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def after_commit(session: AsyncSession, callback: Callable[[], Awaitable[None]]) -> None:
    """
    Queue *callback* to run once *session* has committed.

    Cache invalidation goes through here so a concurrent reader cannot
    re-populate the cache from rows that are not yet visible.
    """
    pending = session.info.setdefault("after_commit", [])
    if callback not in pending:
        pending.append(callback)


async def commit(session: AsyncSession) -> None:
    """Commit *session*, then run the callbacks queued with ``after_commit``."""
    await session.commit()
    for callback in session.info.pop("after_commit", []):
        await callback()


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            session.info.pop("after_commit", None)
            await session.rollback()
            raise
