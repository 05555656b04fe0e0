"""
AsyncEngine factory and schema bootstrap.

postgresql:// URLs are rewritten to the asyncpg driver. NullPool for Postgres
because PgBouncer owns connection pooling in deployed environments.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from services.api.config import settings
from services.api.db.models import Base


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine for the configured database."""
    url = database_url or settings.database_url
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return create_async_engine(
            url,
            poolclass=NullPool,
            echo=settings.debug and settings.environment == "development",
        )
    return create_async_engine(url, echo=settings.debug and settings.environment == "development")


async def create_schema(engine: AsyncEngine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
