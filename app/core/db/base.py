import logging
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from app.core.config import settings


Base = declarative_base()

logger = logging.getLogger(__name__)


def build_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """Async engine for ``url``; defaults to the configured PostgreSQL database."""
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url or str(settings.postgres.connection_string), **kwargs)


engine = build_engine()

# Objects stay readable after commit; the history store hands them to the API
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise


async def create_tables(bind: Optional[AsyncEngine] = None) -> None:
    """Create the history and profile tables if they do not exist yet."""
    # Registers the mapped classes on Base.metadata
    from app.core.db import schemas  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables are ready")
