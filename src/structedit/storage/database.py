"""Async engine and session handling for the report database."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from structedit.config import settings
from structedit.utils.logging import get_logger

logger = get_logger(__name__)

# Constraint names are fixed so Alembic diffs stay stable
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for the reports schema."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create an async engine, by default for the configured database."""
    return create_async_engine(
        url or settings.database_url,
        echo=settings.log_level.upper() == "DEBUG" if echo is None else echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


engine = build_engine()

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session committed on exit, rolled back if the block raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("Rolling back database session after error")
            await session.rollback()
            raise


async def init_db(drop_existing: bool = False) -> None:
    """Create the ``reports`` and ``report_sections`` tables.

    With ``drop_existing`` the tables are dropped first, losing all stored
    sections and change logs.
    """
    async with engine.begin() as conn:
        if drop_existing:
            logger.warning("Dropping existing report tables")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Report tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


async def close_db() -> None:
    """Dispose of pooled connections."""
    await engine.dispose()
