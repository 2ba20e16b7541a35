from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from smokewatch.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def init_db(bind=None):
    """Create any missing tables."""
    from smokewatch import models  # noqa: F401 – registers tables with Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
