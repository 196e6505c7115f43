from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from printer_registry.core.config import Settings, settings


class Base(DeclarativeBase):
    pass


def create_engine(app_settings: Settings = settings) -> AsyncEngine:
    """Create the async engine for the configured database."""
    connect_args = {}
    if app_settings.is_sqlite:
        connect_args["timeout"] = app_settings.sqlite_busy_timeout
    return create_async_engine(
        app_settings.database_url,
        echo=app_settings.debug,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit; the authoritative view is refreshed
    # by merging working-view changes, not by expiring on every commit.
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    # Import models to register them with SQLAlchemy
    from printer_registry.models import printer  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
