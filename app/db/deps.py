# app/db/deps.py
from typing import Any, AsyncIterator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Connection options for the configured backend."""
    if make_url(database_url).get_backend_name() == "sqlite":
        # Background grading jobs write while requests read; wait on the file lock.
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **engine_options(settings.DATABASE_URL),
)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; pipeline jobs open their own through AsyncSessionLocal."""
    async with AsyncSessionLocal() as session:
        yield session
