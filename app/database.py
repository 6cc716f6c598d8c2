from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.config import DATABASE_URL, DB_ECHO

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set in .env")

engine = create_async_engine(
    DATABASE_URL,
    echo=DB_ECHO,
    future=True,
)
async_session_maker = async_sessionmaker(
    engine, expire_on_commit=False, class_=AsyncSession
)

Base = declarative_base()


async def get_session():
    async with async_session_maker() as session:
        yield session


async def init_models(bind: AsyncEngine = engine):
    """Create the events and bookings tables if they do not exist yet."""
    # models must be imported so their tables are registered on Base.metadata
    from app import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
