from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from mnemora.config import get_settings

settings = get_settings()


def make_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; echo=True will log SQL queries, helpful for debugging."""
    kwargs.setdefault("echo", settings.database_echo)
    return create_async_engine(url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def init_models(bind: AsyncEngine) -> None:
    """Create any missing tables (Alembic owns real schema changes)."""
    from mnemora.models import Base
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Create the async engine
engine = make_engine(settings.database_url)

# Create a session factory
AsyncSessionLocal = make_session_factory(engine)
