from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from progress_service.core.config import settings

def get_db_engine():
    """Creates the shared engine."""
    return create_async_engine(
        settings.DB.DB_URL,
        pool_size=settings.DB.DB_POOL_SIZE,
        max_overflow=settings.DB.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )

def get_session_factory(engine):
    """Creates the session factory."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
