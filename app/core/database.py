import ssl
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.core.errors import ConfigurationError
from app.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def _fix_postgres_url(url: str) -> tuple[str, dict]:
    """
    Fix hosted Postgres connection URLs for asyncpg compatibility.

    Managed providers include params like sslmode, channel_binding that asyncpg
    doesn't accept. We strip them and handle SSL via connect_args.
    Local hosts (localhost/127.0.0.1/db) and SQLite get no SSL.
    """
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url, {}

    params = parse_qs(parsed.query)

    # Remove unsupported asyncpg params
    for param in ["sslmode", "channel_binding", "options"]:
        params.pop(param, None)

    new_query = urlencode(params, doseq=True)
    clean_url = urlunparse(parsed._replace(query=new_query))

    hostname = parsed.hostname or ""
    if hostname in ("localhost", "127.0.0.1", "db"):
        return clean_url, {}
    return clean_url, {"ssl": ssl.create_default_context()}


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL."""
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set")

    clean_url, connect_args = _fix_postgres_url(database_url)
    options: dict[str, Any] = {"echo": echo, "connect_args": connect_args}
    if not clean_url.startswith("sqlite"):
        options.update(pool_pre_ping=True, pool_size=5, max_overflow=10, pool_recycle=280)
    return create_async_engine(clean_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the store, ledger and queue."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine(settings.database_url, echo=settings.debug)

AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.bind(error=str(e)).error("database_transaction_rollback")
            await session.rollback()
            raise
