"""Database connection and session management."""

from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from leadflow.config import settings

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")


def normalize_database_url(url: str) -> str:
    """Convert postgresql:// to postgresql+asyncpg://"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, echo: bool = False):
    """Create an async engine; pool sizing only applies to server databases."""
    url = normalize_database_url(url)
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10)
    return create_async_engine(url, **kwargs)


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


def dialect_insert(session: AsyncSession, table):
    """
    Return an INSERT construct that supports ON CONFLICT for the bound dialect.

    Both PostgreSQL and SQLite expose on_conflict_do_update/do_nothing with
    the same signature.
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect_name}'")


# Create async engine
engine = build_engine(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG")

# Create session factory
AsyncSessionLocal = build_session_factory(engine)

# Base class for models
Base = declarative_base()


async def get_db():
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables(bind=None):
    """Create all tables (development / tests)."""
    import leadflow.models  # noqa: F401  registers models on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
