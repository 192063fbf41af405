from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_session():
    async with SessionLocal() as session:
        yield session

async def init_models():
    # In dev-only "create_all" mode the app owns the schema; otherwise, migrations own it.
    if settings.DB_MANAGE.lower() == "create_all":
        # register mapped classes on Base.metadata
        import clipvault.modules.clips.models  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

async def dispose_engine():
    await engine.dispose()
