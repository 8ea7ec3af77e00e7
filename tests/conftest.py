"""
Test infrastructure for the Conduit API.

Strategy
--------
- SQLite in-memory via aiosqlite, so no Postgres instance is needed in CI.
- StaticPool forces every session onto the same connection; an in-memory
  SQLite database is connection-scoped.
- ``configure_sqlite`` turns on foreign keys (cascading deletes) and
  explicit BEGIN so savepoints nest inside the session transaction.
- The app's ``get_db`` dependency is overridden to use the test session
  factory; tables are created before and dropped after each test.
- The Redis cache is disabled by setting ``cache._redis = None``; the
  CacheManager treats that as a permanent miss.
- Requests identify the viewer through ``settings.VIEWER_HEADER``; the
  ``auth`` helper builds that header.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from conduit.cache import cache
from conduit.config import settings
from conduit.database import Base, commit, configure_sqlite, get_db
from conduit.main import app
from conduit.middleware import install_query_counter
from conduit.models import User

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

configure_sqlite(engine_test)
install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override — replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await commit(session)
        except Exception:
            session.info.pop("after_commit", None)
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


def auth(user_id: int) -> dict:
    """Headers identifying *user_id* as the authenticated viewer."""
    return {settings.VIEWER_HEADER: str(user_id)}


async def make_user(db: AsyncSession, username: str, email: str | None = None) -> User:
    user = User(username=username, email=email or f"{username}@example.com")
    db.add(user)
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call services directly.
    Nothing is committed; the session is rolled back on close.
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app via ASGITransport, Redis disabled."""
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def api() -> str:
    return settings.API_PREFIX
